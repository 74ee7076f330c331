"""Driver domain events."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from delivery.domain import delivery


@delivery.event(part_of="Driver")
class DriverRegistered:
    __version__ = 1

    driver_id = Identifier(required=True)
    name = String(required=True)
    latitude = Float()
    longitude = Float()
    registered_at = DateTime(required=True)


@delivery.event(part_of="Driver")
class DriverStatusChanged:
    __version__ = 1

    driver_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@delivery.event(part_of="Driver")
class DriverDutyChanged:
    __version__ = 1

    driver_id = Identifier(required=True)
    on_duty = Boolean(required=True)
    changed_at = DateTime(required=True)


@delivery.event(part_of="Driver")
class DriverLocationUpdated:
    __version__ = 1

    driver_id = Identifier(required=True)
    latitude = Float(required=True)
    longitude = Float(required=True)
    recorded_at = DateTime(required=True)


@delivery.event(part_of="Driver")
class DriverTookOrder:
    """The driver became busy with an order."""

    __version__ = 1

    driver_id = Identifier(required=True)
    order_id = Identifier(required=True)
    taken_at = DateTime(required=True)


@delivery.event(part_of="Driver")
class DriverReleased:
    """The driver is free again, after a delivery or a failed order."""

    __version__ = 1

    driver_id = Identifier(required=True)
    order_id = Identifier(required=True)
    completed = Boolean(required=True)
    released_at = DateTime(required=True)


@delivery.event(part_of="Driver")
class DriverRatingRecalculated:
    __version__ = 1

    driver_id = Identifier(required=True)
    average_rating = Float(required=True)
    rating_count = Integer(required=True)
