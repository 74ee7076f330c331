"""Driver aggregate (CQRS).

Owned by driver management; the order engine reads position and
availability and flips ``is_available`` when it hands the driver an order
and when the order ends.

Status:
    PENDING_APPROVAL → {ACTIVE, REJECTED}
    ACTIVE ⇄ SUSPENDED
    {ACTIVE, SUSPENDED} → INACTIVE → ACTIVE

A driver is dispatchable when ACTIVE, on duty and available.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, ValueObject

from delivery.domain import delivery
from delivery.driver.events import (
    DriverDutyChanged,
    DriverLocationUpdated,
    DriverRatingRecalculated,
    DriverRegistered,
    DriverReleased,
    DriverStatusChanged,
    DriverTookOrder,
)
from delivery.errors import DriverUnavailable
from delivery.shared.geo import GeoPoint


class DriverStatus(Enum):
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"
    REJECTED = "rejected"


_VALID_STATUS_TRANSITIONS = {
    DriverStatus.PENDING_APPROVAL: {DriverStatus.ACTIVE, DriverStatus.REJECTED},
    DriverStatus.ACTIVE: {DriverStatus.SUSPENDED, DriverStatus.INACTIVE},
    DriverStatus.SUSPENDED: {DriverStatus.ACTIVE, DriverStatus.INACTIVE},
    DriverStatus.INACTIVE: {DriverStatus.ACTIVE},
    DriverStatus.REJECTED: set(),  # terminal
}

DEFAULT_MAX_DELIVERY_RADIUS_KM = 10.0


@delivery.aggregate
class Driver:
    name = String(required=True, max_length=200)
    status = String(choices=DriverStatus, default=DriverStatus.PENDING_APPROVAL.value)
    is_available = Boolean(default=False)
    is_on_duty = Boolean(default=False)
    current_location = ValueObject(GeoPoint)
    location_updated_at = DateTime()
    max_delivery_radius_km = Float(default=DEFAULT_MAX_DELIVERY_RADIUS_KM, min_value=1.0, max_value=50.0)
    current_order_id = Identifier()
    average_rating = Float(default=0.0)
    rating_count = Integer(default=0)
    total_deliveries = Integer(default=0)
    completed_deliveries = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def busy_driver_is_not_available(self):
        if self.current_order_id and self.is_available:
            raise ValidationError({"is_available": ["A driver holding an order cannot be available"]})

    @classmethod
    def register(
        cls,
        name: str,
        latitude: float | None = None,
        longitude: float | None = None,
        max_delivery_radius_km: float = DEFAULT_MAX_DELIVERY_RADIUS_KM,
    ):
        now = datetime.now(UTC)
        location = None
        if latitude is not None and longitude is not None:
            location = GeoPoint(latitude=latitude, longitude=longitude)
        driver = cls(
            name=name,
            status=DriverStatus.PENDING_APPROVAL.value,
            current_location=location,
            location_updated_at=now if location else None,
            max_delivery_radius_km=max_delivery_radius_km,
            created_at=now,
            updated_at=now,
        )
        driver.raise_(
            DriverRegistered(
                driver_id=str(driver.id),
                name=name,
                latitude=latitude,
                longitude=longitude,
                registered_at=now,
            )
        )
        return driver

    # -------------------------------------------------------------------
    # Account status and duty
    # -------------------------------------------------------------------
    def change_status(self, new_status: str) -> None:
        current = DriverStatus(self.status)
        target = DriverStatus(new_status)
        if target not in _VALID_STATUS_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot change driver status from {current.value} to {target.value}"]})
        if target != DriverStatus.ACTIVE and self.current_order_id:
            raise ValidationError({"status": ["Driver is carrying an order"]})

        now = datetime.now(UTC)
        self.status = target.value
        if target != DriverStatus.ACTIVE:
            self.is_on_duty = False
            self.is_available = False
        self.updated_at = now
        self.raise_(
            DriverStatusChanged(
                driver_id=str(self.id),
                previous_status=current.value,
                new_status=target.value,
                changed_at=now,
            )
        )

    def set_duty_status(self, on_duty: bool) -> None:
        """Go on or off duty. Availability follows duty."""
        if on_duty and DriverStatus(self.status) != DriverStatus.ACTIVE:
            raise ValidationError({"is_on_duty": ["Only active drivers can go on duty"]})
        if not on_duty and self.current_order_id:
            raise ValidationError({"is_on_duty": ["Finish the current order before going off duty"]})

        now = datetime.now(UTC)
        self.is_on_duty = on_duty
        self.is_available = on_duty
        self.updated_at = now
        self.raise_(DriverDutyChanged(driver_id=str(self.id), on_duty=on_duty, changed_at=now))

    def update_location(self, latitude: float, longitude: float) -> None:
        now = datetime.now(UTC)
        self.current_location = GeoPoint(latitude=latitude, longitude=longitude)
        self.location_updated_at = now
        self.updated_at = now
        self.raise_(
            DriverLocationUpdated(
                driver_id=str(self.id),
                latitude=latitude,
                longitude=longitude,
                recorded_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------
    @property
    def is_dispatchable(self) -> bool:
        return DriverStatus(self.status) == DriverStatus.ACTIVE and bool(self.is_on_duty) and bool(self.is_available)

    def assert_dispatchable(self) -> None:
        if not self.is_dispatchable:
            raise DriverUnavailable({"driver_id": [f"Driver {self.id} is not available for dispatch"]})

    def take_order(self, order_id: str) -> None:
        self.assert_dispatchable()
        now = datetime.now(UTC)
        self.is_available = False
        self.current_order_id = order_id
        self.total_deliveries = (self.total_deliveries or 0) + 1
        self.updated_at = now
        self.raise_(DriverTookOrder(driver_id=str(self.id), order_id=order_id, taken_at=now))

    def release(self, order_id: str, completed: bool) -> None:
        """Free the driver after their order was delivered or failed."""
        if self.current_order_id and str(self.current_order_id) != str(order_id):
            raise ValidationError({"current_order_id": [f"Driver is not carrying order {order_id}"]})

        now = datetime.now(UTC)
        self.current_order_id = None
        self.is_available = bool(self.is_on_duty)
        if completed:
            self.completed_deliveries = (self.completed_deliveries or 0) + 1
        self.updated_at = now
        self.raise_(
            DriverReleased(
                driver_id=str(self.id),
                order_id=order_id,
                completed=completed,
                released_at=now,
            )
        )

    def update_rating(self, average: float, count: int) -> None:
        self.average_rating = average
        self.rating_count = count
        self.updated_at = datetime.now(UTC)
        self.raise_(DriverRatingRecalculated(driver_id=str(self.id), average_rating=average, rating_count=count))
