"""Order aggregate (CQRS): the core of the delivery engine.

An order is placed against one venue, priced once at placement and then
walks the delivery state machine (see state_machine.py):

    PENDING → PREPARING → READY → DISPATCHED → IN_TRANSIT → DELIVERED
    {any non-terminal} → FAILED

Who may request which move lives in the state machine tables; this class
applies the resulting decision, keeps the tracking log and guards the
invariants that tie money and drivers to the status:

- total_amount == subtotal + fee.total + tax + tip − discount_amount
- driver_id is set exactly while the order carries a driver (and may stay
  set on an order that failed after dispatch)
- ratings are written once

Every mutation bumps ``version`` so callers can detect that the order
changed under them.
"""

import json
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from delivery.concurrency import record_key
from delivery.domain import delivery
from delivery.errors import (
    AlreadyRated,
    ConcurrentModification,
    InvalidTransition,
    NotCancellable,
    NotDelivered,
    OrderNotReady,
    Unauthorized,
)
from delivery.order.events import (
    DriverAssigned,
    DriverLocationRecorded,
    OrderCancelled,
    OrderDeleted,
    OrderDelivered,
    OrderFailed,
    OrderPlaced,
    OrderRated,
    OrderStatusChanged,
    PaymentConfirmed,
    PaymentDeclined,
    PaymentInitiated,
    PaymentRefunded,
)
from delivery.order.state_machine import (
    DRIVER_HELD_STATUSES,
    TERMINAL_STATUSES,
    Actor,
    ActorRole,
    DeliveryStatus,
    OrderFacts,
    PaymentStatus,
    TransitionDecision,
    decide,
)
from delivery.pricing.totals import DiscountType
from delivery.shared.geo import GeoPoint, PostalAddress

BASE_PREP_MINUTES = 15
PREP_MINUTES_PER_ITEM = 2
PAYMENT_AMOUNT_TOLERANCE = 0.01

# Statuses in which a driver may report positions against the order
_LOCATION_REPORTING_STATUSES = {DeliveryStatus.DISPATCHED, DeliveryStatus.IN_TRANSIT}


class PaymentMethod(Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    CASH_ON_DELIVERY = "cash_on_delivery"
    WALLET = "wallet"
    RAZORPAY = "razorpay"


def prep_minutes_for(item_count: int) -> int:
    return BASE_PREP_MINUTES + PREP_MINUTES_PER_ITEM * item_count


def estimated_delivery_time(placed_at: datetime, prep_minutes: int, distance_km: float, speed_kmh: float) -> datetime:
    """Placement time plus preparation plus travel at courier speed."""
    travel_minutes = (distance_km / speed_kmh) * 60 if speed_kmh > 0 else 0
    return placed_at + timedelta(minutes=prep_minutes + travel_minutes)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@delivery.value_object(part_of="Order")
class FeeBreakdown:
    """Delivery fee as charged at placement. ``total`` sums the six components."""

    base = Float(default=0.0)
    distance_fee = Float(default=0.0)
    surge_fee = Float(default=0.0)
    small_order_fee = Float(default=0.0)
    service_fee = Float(default=0.0)
    handling_fee = Float(default=0.0)
    zone_fee = Float(default=0.0)
    discount = Float(default=0.0)
    is_free = Boolean(default=False)
    surge_multiplier = Float(default=1.0)
    currency = String(max_length=3, default="USD")
    total = Float(default=0.0)

    @classmethod
    def from_fee(cls, fee) -> "FeeBreakdown":
        return cls(
            base=float(fee.base),
            distance_fee=float(fee.distance_fee),
            surge_fee=float(fee.surge_fee),
            small_order_fee=float(fee.small_order_fee),
            service_fee=float(fee.service_fee),
            handling_fee=float(fee.handling_fee),
            zone_fee=float(fee.zone_fee),
            discount=float(fee.discount),
            is_free=fee.is_free,
            surge_multiplier=float(fee.surge_multiplier),
            currency=fee.currency,
            total=float(fee.total),
        )


@delivery.value_object(part_of="Order")
class Cancellation:
    reason = String(required=True, max_length=500)
    cancelled_by = String(required=True, choices=ActorRole)
    actor_id = String(max_length=100)
    cancelled_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@delivery.entity(part_of="Order")
class OrderItem:
    """A menu item line. Option surcharges are charged once per line."""

    menu_item_id = Identifier(required=True)
    name = String(required=True, max_length=200)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    option_costs = Text(default="[]")  # JSON list of surcharges

    def option_cost_list(self) -> list[float]:
        return json.loads(self.option_costs) if self.option_costs else []


@delivery.entity(part_of="Order")
class TrackingUpdate:
    """One append-only entry of the order's tracking log."""

    sequence = Integer(required=True, min_value=1)
    status = String(required=True, choices=DeliveryStatus)
    actor_role = String(required=True, choices=ActorRole)
    actor_id = String(max_length=100)
    location = ValueObject(GeoPoint)
    notes = String(max_length=500)
    recorded_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@delivery.aggregate
class Order:
    customer_id = Identifier(required=True)
    venue_id = Identifier(required=True)
    venue_owner_id = Identifier(required=True)
    driver_id = Identifier()
    items = HasMany(OrderItem)
    dropoff_location = ValueObject(GeoPoint, required=True)
    dropoff_address = ValueObject(PostalAddress)
    distance_km = Float(default=0.0, min_value=0.0)

    subtotal = Float(default=0.0)
    fee = ValueObject(FeeBreakdown)
    tax = Float(default=0.0)
    tip = Float(default=0.0, min_value=0.0)
    discount_code = String(max_length=50)
    discount_type = String(choices=DiscountType)
    discount_value = Float()
    discount_amount = Float(default=0.0)
    total_amount = Float(default=0.0)

    payment_method = String(required=True, choices=PaymentMethod)
    payment_reference = String(max_length=255)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    refunded_amount = Float(default=0.0)

    delivery_status = String(choices=DeliveryStatus, default=DeliveryStatus.PENDING.value)
    tracking_updates = HasMany(TrackingUpdate)
    cancellation = ValueObject(Cancellation)

    rating = Integer(min_value=1, max_value=5)
    driver_rating = Integer(min_value=1, max_value=5)
    venue_rating = Integer(min_value=1, max_value=5)
    feedback = String(max_length=1000)
    rated_at = DateTime()

    special_instructions = String(max_length=500)
    estimated_prep_minutes = Integer()
    estimated_delivery_at = DateTime()
    actual_delivery_at = DateTime()

    is_deleted = Boolean(default=False)
    deleted_at = DateTime()
    version = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def total_matches_its_components(self):
        if self.fee is None:
            return
        expected = self.subtotal + self.fee.total + self.tax + self.tip - self.discount_amount
        if abs(round(expected, 2) - self.total_amount) > 0.005:
            raise ValidationError({"total_amount": ["Total must equal subtotal + fee + tax + tip - discount"]})

    @invariant.post
    def driver_matches_delivery_status(self):
        status = DeliveryStatus(self.delivery_status)
        if status in DRIVER_HELD_STATUSES and not self.driver_id:
            raise ValidationError({"driver_id": [f"An order that is {status.value} must have a driver"]})
        if self.driver_id and status not in DRIVER_HELD_STATUSES and status != DeliveryStatus.FAILED:
            raise ValidationError({"driver_id": [f"An order that is {status.value} cannot have a driver"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id: str,
        venue,
        items: list[dict],
        dropoff: GeoPoint,
        distance_km: float,
        fee,
        totals,
        payment_method: str,
        dropoff_address: PostalAddress | None = None,
        discount_code: str | None = None,
        discount_type: str | None = None,
        discount_value: float | None = None,
        special_instructions: str | None = None,
        estimated_delivery_at: datetime | None = None,
        placed_at: datetime | None = None,
    ):
        """Create a pending, unpaid order from already derived prices.

        ``fee`` is a DeliveryFee and ``totals`` an OrderTotals, both computed by
        the pricing functions.
        """
        now = placed_at or datetime.now(UTC)
        order = cls(
            customer_id=customer_id,
            venue_id=str(venue.id),
            venue_owner_id=str(venue.owner_id),
            dropoff_location=dropoff,
            dropoff_address=dropoff_address,
            distance_km=distance_km,
            subtotal=float(totals.subtotal),
            fee=FeeBreakdown.from_fee(fee),
            tax=float(totals.tax),
            tip=float(totals.tip),
            discount_code=discount_code,
            discount_type=discount_type,
            discount_value=discount_value,
            discount_amount=float(totals.discount),
            total_amount=float(totals.total),
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            delivery_status=DeliveryStatus.PENDING.value,
            special_instructions=special_instructions,
            estimated_prep_minutes=prep_minutes_for(len(items)),
            estimated_delivery_at=estimated_delivery_at,
            created_at=now,
            updated_at=now,
        )
        for item in items:
            order.add_items(
                OrderItem(
                    menu_item_id=item["menu_item_id"],
                    name=item["name"],
                    quantity=item["quantity"],
                    unit_price=item["unit_price"],
                    option_costs=json.dumps(item.get("option_costs") or []),
                )
            )
        order._track(DeliveryStatus.PENDING, Actor(ActorRole.CUSTOMER, str(customer_id)), now, notes="Order placed")
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(customer_id),
                venue_id=str(venue.id),
                item_count=len(items),
                subtotal=order.subtotal,
                fee_total=order.fee.total,
                tax=order.tax,
                tip=order.tip,
                discount_amount=order.discount_amount,
                total_amount=order.total_amount,
                distance_km=distance_km,
                payment_method=payment_method,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def status(self) -> DeliveryStatus:
        return DeliveryStatus(self.delivery_status)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_cancellable(self) -> bool:
        return not self.is_deleted and not self.is_terminal and self.cancellation is None

    def facts(self) -> OrderFacts:
        return OrderFacts(
            delivery_status=self.status,
            payment_status=PaymentStatus(self.payment_status),
            customer_id=str(self.customer_id),
            venue_owner_id=str(self.venue_owner_id) if self.venue_owner_id else None,
            driver_id=str(self.driver_id) if self.driver_id else None,
            is_cancellable=self.is_cancellable,
        )

    def assert_version(self, expected_version: int | None) -> None:
        if expected_version is not None and expected_version != self.version:
            raise ConcurrentModification(
                record_key("order", self.id),
                f"Order {self.id} is at version {self.version}, expected {expected_version}",
            )

    def tracking_log(self) -> list:
        return sorted(self.tracking_updates, key=lambda update: update.sequence)

    def _touch(self, now: datetime) -> None:
        self.version = (self.version or 0) + 1
        self.updated_at = now

    def _track(
        self,
        status: DeliveryStatus,
        actor: Actor,
        now: datetime,
        location: GeoPoint | None = None,
        notes: str | None = None,
    ) -> None:
        self.add_tracking_updates(
            TrackingUpdate(
                sequence=len(self.tracking_updates) + 1,
                status=status.value,
                actor_role=actor.role.value,
                actor_id=actor.identity,
                location=location,
                notes=notes,
                recorded_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def authorize_transition(self, requested: str, actor: Actor) -> TransitionDecision:
        """Ask the state machine; raises its typed rejection or returns the decision."""
        try:
            target = DeliveryStatus(requested)
        except ValueError:
            raise ValidationError({"delivery_status": [f"Unknown delivery status: {requested}"]}) from None
        return decide(self.facts(), target, actor)

    def apply_transition(
        self,
        decision: TransitionDecision,
        notes: str | None = None,
        location: GeoPoint | None = None,
    ) -> None:
        now = datetime.now(UTC)
        actor = decision.actor
        with atomic_change(self):
            self.delivery_status = decision.target.value
            if decision.claims_driver:
                self.driver_id = actor.identity
            if decision.completes_delivery:
                self.actual_delivery_at = now
            if decision.target == DeliveryStatus.FAILED and self.cancellation is None:
                self.cancellation = Cancellation(
                    reason=notes or f"Cancelled by {actor.role.value}",
                    cancelled_by=actor.role.value,
                    actor_id=actor.identity,
                    cancelled_at=now,
                )
            self._touch(now)
        self._track(decision.target, actor, now, location=location, notes=notes)

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=decision.previous.value,
                new_status=decision.target.value,
                actor_role=actor.role.value,
                actor_id=actor.identity,
                notes=notes,
                version=self.version,
                changed_at=now,
            )
        )
        if decision.claims_driver:
            self.raise_(
                DriverAssigned(
                    order_id=str(self.id),
                    driver_id=str(self.driver_id),
                    assigned_by=ActorRole.DRIVER.value,
                    assigned_at=now,
                )
            )
        if decision.completes_delivery:
            self.raise_(
                OrderDelivered(
                    order_id=str(self.id),
                    venue_id=str(self.venue_id),
                    driver_id=self.driver_id,
                    delivered_at=now,
                )
            )
        elif decision.target == DeliveryStatus.FAILED:
            self.raise_(
                OrderFailed(
                    order_id=str(self.id),
                    venue_id=str(self.venue_id),
                    driver_id=self.driver_id,
                    failed_by=actor.role.value,
                    failed_at=now,
                )
            )

    def transition(
        self,
        requested: str,
        actor: Actor,
        notes: str | None = None,
        location: GeoPoint | None = None,
        expected_version: int | None = None,
    ) -> TransitionDecision:
        self.assert_version(expected_version)
        decision = self.authorize_transition(requested, actor)
        self.apply_transition(decision, notes=notes, location=location)
        return decision

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------
    def assign_driver(self, driver_id: str, actor: Actor) -> None:
        """Dispatch a driver chosen by the venue (or the system)."""
        is_owner = actor.role == ActorRole.VENUE and str(actor.identity) == str(self.venue_owner_id)
        if actor.role != ActorRole.SYSTEM and not is_owner:
            raise Unauthorized({"actor_id": ["Only the venue owner can assign a driver"]})
        if self.status != DeliveryStatus.READY:
            raise OrderNotReady({"delivery_status": [f"Order is {self.status.value}, not ready"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.driver_id = driver_id
            self.delivery_status = DeliveryStatus.DISPATCHED.value
            self._touch(now)
        self._track(DeliveryStatus.DISPATCHED, actor, now, notes=f"Driver {driver_id} assigned")

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=DeliveryStatus.READY.value,
                new_status=DeliveryStatus.DISPATCHED.value,
                actor_role=actor.role.value,
                actor_id=actor.identity,
                version=self.version,
                changed_at=now,
            )
        )
        self.raise_(
            DriverAssigned(
                order_id=str(self.id),
                driver_id=str(driver_id),
                assigned_by=actor.role.value,
                assigned_at=now,
            )
        )

    def record_driver_location(self, actor: Actor, latitude: float, longitude: float, notes: str | None = None):
        if actor.role != ActorRole.DRIVER or not self.driver_id or str(actor.identity) != str(self.driver_id):
            raise Unauthorized({"actor_id": ["Only the assigned driver can report a location"]})
        if self.status not in _LOCATION_REPORTING_STATUSES:
            raise InvalidTransition({"delivery_status": [f"Cannot track an order that is {self.status.value}"]})

        now = datetime.now(UTC)
        location = GeoPoint(latitude=latitude, longitude=longitude)
        self._touch(now)
        self._track(self.status, actor, now, location=location, notes=notes)
        self.raise_(
            DriverLocationRecorded(
                order_id=str(self.id),
                driver_id=str(self.driver_id),
                latitude=latitude,
                longitude=longitude,
                recorded_at=now,
            )
        )
        return location

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, actor: Actor, reason: str, expected_version: int | None = None) -> TransitionDecision:
        if not self.is_cancellable:
            raise NotCancellable({"delivery_status": [f"Order {self.id} can no longer be cancelled"]})
        self.assert_version(expected_version)

        decision = self.authorize_transition(DeliveryStatus.FAILED.value, actor)
        self.apply_transition(decision, notes=reason)
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                cancelled_by=actor.role.value,
                actor_id=actor.identity,
                reason=reason,
                cancelled_at=self.cancellation.cancelled_at,
            )
        )
        return decision

    # -------------------------------------------------------------------
    # Rating
    # -------------------------------------------------------------------
    def rate(
        self,
        customer_id: str,
        rating: int,
        driver_rating: int | None = None,
        venue_rating: int | None = None,
        feedback: str | None = None,
    ) -> None:
        if str(customer_id) != str(self.customer_id):
            raise Unauthorized({"customer_id": ["Only the ordering customer can rate the order"]})
        if self.status != DeliveryStatus.DELIVERED:
            raise NotDelivered({"delivery_status": ["Only delivered orders can be rated"]})
        if self.rating is not None:
            raise AlreadyRated({"rating": ["Order has already been rated"]})
        if driver_rating is not None and not self.driver_id:
            raise ValidationError({"driver_rating": ["Order has no driver to rate"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.rating = rating
            self.driver_rating = driver_rating
            self.venue_rating = venue_rating
            self.feedback = feedback
            self.rated_at = now
            self._touch(now)
        self.raise_(
            OrderRated(
                order_id=str(self.id),
                venue_id=str(self.venue_id),
                driver_id=self.driver_id,
                rating=rating,
                driver_rating=driver_rating,
                venue_rating=venue_rating,
                rated_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def attach_payment(self, amount: float, payment_method: str, reference: str) -> None:
        now = datetime.now(UTC)
        with atomic_change(self):
            self.payment_method = payment_method
            self.payment_reference = reference
            self._touch(now)
        self.raise_(
            PaymentInitiated(
                order_id=str(self.id),
                payment_reference=reference,
                amount=amount,
                payment_method=payment_method,
                initiated_at=now,
            )
        )

    def assert_payable(self, customer_id: str, amount: float) -> None:
        if str(customer_id) != str(self.customer_id):
            raise Unauthorized({"customer_id": ["Only the ordering customer can pay for the order"]})
        if PaymentStatus(self.payment_status) != PaymentStatus.PENDING:
            raise ValidationError({"payment_status": [f"Payment is already {self.payment_status}"]})
        if self.is_terminal:
            raise ValidationError({"delivery_status": [f"Order is already {self.delivery_status}"]})
        if abs(amount - self.total_amount) > PAYMENT_AMOUNT_TOLERANCE:
            raise ValidationError({"amount": [f"Payment amount {amount} does not match order total {self.total_amount}"]})

    def mark_paid(self, reference: str | None = None) -> bool:
        """Record a captured payment. Returns False when nothing changed."""
        if PaymentStatus(self.payment_status) != PaymentStatus.PENDING:
            return False
        now = datetime.now(UTC)
        with atomic_change(self):
            self.payment_status = PaymentStatus.PAID.value
            if reference:
                self.payment_reference = reference
            self._touch(now)
        self.raise_(PaymentConfirmed(order_id=str(self.id), payment_reference=self.payment_reference, confirmed_at=now))
        return True

    def mark_payment_failed(self, reason: str) -> bool:
        if PaymentStatus(self.payment_status) != PaymentStatus.PENDING:
            return False
        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.FAILED.value
        self._touch(now)
        self.raise_(PaymentDeclined(order_id=str(self.id), reason=reason, declined_at=now))
        return True

    def refundable_amount(self, amount: float | None = None) -> float:
        """Validate a refund request; None means everything not yet refunded."""
        current = PaymentStatus(self.payment_status)
        if current not in (PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED):
            raise ValidationError({"payment_status": [f"Cannot refund a payment that is {current.value}"]})

        remaining = round(self.total_amount - (self.refunded_amount or 0.0), 2)
        amount = remaining if amount is None else round(amount, 2)
        if amount <= 0:
            raise ValidationError({"amount": ["Refund amount must be positive"]})
        if amount - remaining > PAYMENT_AMOUNT_TOLERANCE:
            raise ValidationError({"amount": [f"Refund amount {amount} exceeds the refundable {remaining}"]})
        return amount

    def mark_refunded(self, amount: float | None = None) -> bool:
        """Refund all (``amount`` None) or part of the captured payment.

        Returns True when the order is now fully refunded.
        """
        amount = self.refundable_amount(amount)
        now = datetime.now(UTC)
        refunded = round((self.refunded_amount or 0.0) + amount, 2)
        is_full = self.total_amount - refunded <= PAYMENT_AMOUNT_TOLERANCE
        with atomic_change(self):
            self.refunded_amount = refunded
            self.payment_status = (PaymentStatus.REFUNDED if is_full else PaymentStatus.PARTIALLY_REFUNDED).value
            self._touch(now)
        self.raise_(
            PaymentRefunded(
                order_id=str(self.id),
                amount=amount,
                refunded_amount=refunded,
                is_full_refund=is_full,
                refunded_at=now,
            )
        )
        return is_full

    # -------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------
    def soft_delete(self, actor: Actor) -> None:
        is_owner = actor.role == ActorRole.VENUE and str(actor.identity) == str(self.venue_owner_id)
        if actor.role != ActorRole.SYSTEM and not is_owner:
            raise Unauthorized({"actor_id": ["Only the venue owner can delete an order"]})
        if not self.is_terminal:
            raise InvalidTransition({"delivery_status": ["Only delivered or failed orders can be deleted"]})
        if self.is_deleted:
            return

        now = datetime.now(UTC)
        with atomic_change(self):
            self.is_deleted = True
            self.deleted_at = now
            self._touch(now)
        self.raise_(OrderDeleted(order_id=str(self.id), deleted_by=actor.role.value, deleted_at=now))
