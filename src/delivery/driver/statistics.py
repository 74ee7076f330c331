"""Driver delivery statistics, computed from the driver's orders."""

from dataclasses import dataclass
from datetime import UTC

from protean.utils.globals import current_domain

from delivery.driver.driver import Driver
from delivery.order.order import Order
from delivery.order.state_machine import ActorRole, DeliveryStatus


@dataclass(frozen=True)
class DriverStatistics:
    driver_id: str
    total_deliveries: int
    completed_deliveries: int
    cancellation_rate: float
    on_time_percentage: float
    average_rating: float


def _as_aware(value):
    # Memory and SQL providers may hand back naive UTC datetimes
    return value.replace(tzinfo=UTC) if value is not None and value.tzinfo is None else value


def driver_statistics(driver_id: str) -> DriverStatistics:
    """Cancellation rate counts orders the driver cancelled; on time means
    delivered no later than the estimate. With no completed deliveries the
    driver is 100% on time.
    """
    driver = current_domain.repository_for(Driver).get(driver_id)
    orders = current_domain.repository_for(Order).find_orders(driver_id=str(driver.id))

    total = len(orders)
    delivered = [order for order in orders if order.delivery_status == DeliveryStatus.DELIVERED.value]
    cancelled_by_driver = [
        order
        for order in orders
        if order.cancellation is not None and order.cancellation.cancelled_by == ActorRole.DRIVER.value
    ]
    on_time = [
        order
        for order in delivered
        if order.estimated_delivery_at is None
        or _as_aware(order.actual_delivery_at) <= _as_aware(order.estimated_delivery_at)
    ]

    return DriverStatistics(
        driver_id=str(driver.id),
        total_deliveries=total,
        completed_deliveries=len(delivered),
        cancellation_rate=round(len(cancelled_by_driver) / total * 100, 2) if total else 0.0,
        on_time_percentage=round(len(on_time) / len(delivered) * 100, 2) if delivered else 100.0,
        average_rating=driver.average_rating or 0.0,
    )
