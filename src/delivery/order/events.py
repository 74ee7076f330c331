"""Order domain events.

Past tense, versioned, carrying enough for rating recomputation, the
statistics readers and any downstream notification consumer.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from delivery.domain import delivery


@delivery.event(part_of="Order")
class OrderPlaced:
    """A customer placed an order with a venue."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    venue_id = Identifier(required=True)
    item_count = Integer(required=True)
    subtotal = Float(required=True)
    fee_total = Float(required=True)
    tax = Float(required=True)
    tip = Float(required=True)
    discount_amount = Float(required=True)
    total_amount = Float(required=True)
    distance_km = Float(required=True)
    payment_method = String(required=True)
    placed_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    actor_role = String(required=True)
    actor_id = String()
    notes = String()
    version = Integer(required=True)
    changed_at = DateTime(required=True)


@delivery.event(part_of="Order")
class DriverAssigned:
    """A driver was dispatched to a ready order."""

    __version__ = 1

    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    assigned_by = String(required=True)  # venue, system or the driver themself
    assigned_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    venue_id = Identifier(required=True)
    driver_id = Identifier()
    delivered_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderFailed:
    """The order ended without being delivered."""

    __version__ = 1

    order_id = Identifier(required=True)
    venue_id = Identifier(required=True)
    driver_id = Identifier()
    failed_by = String(required=True)
    failed_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    cancelled_by = String(required=True)
    actor_id = String()
    reason = String(required=True)
    cancelled_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderRated:
    """The customer rated a delivered order."""

    __version__ = 1

    order_id = Identifier(required=True)
    venue_id = Identifier(required=True)
    driver_id = Identifier()
    rating = Integer(required=True)
    driver_rating = Integer()
    venue_rating = Integer()
    rated_at = DateTime(required=True)


@delivery.event(part_of="Order")
class DriverLocationRecorded:
    __version__ = 1

    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    latitude = Float(required=True)
    longitude = Float(required=True)
    recorded_at = DateTime(required=True)


@delivery.event(part_of="Order")
class PaymentInitiated:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_reference = String(required=True)
    amount = Float(required=True)
    payment_method = String(required=True)
    initiated_at = DateTime(required=True)


@delivery.event(part_of="Order")
class PaymentConfirmed:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_reference = String()
    confirmed_at = DateTime(required=True)


@delivery.event(part_of="Order")
class PaymentDeclined:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    declined_at = DateTime(required=True)


@delivery.event(part_of="Order")
class PaymentRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    amount = Float(required=True)
    refunded_amount = Float(required=True)
    is_full_refund = Boolean(required=True)
    refunded_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderDeleted:
    __version__ = 1

    order_id = Identifier(required=True)
    deleted_by = String(required=True)
    deleted_at = DateTime(required=True)
