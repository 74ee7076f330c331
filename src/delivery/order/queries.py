"""Order read side: detail, tracking log and filtered listings."""

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from delivery.order.order import Order
from delivery.order.state_machine import DeliveryStatus


def get_order(order_id: str, include_deleted: bool = False) -> Order:
    order = current_domain.repository_for(Order).get(order_id)
    if order.is_deleted and not include_deleted:
        raise ObjectNotFoundError(f"Order with id {order_id} does not exist")
    return order


def tracking_log(order_id: str) -> list:
    """Tracking entries oldest first."""
    return get_order(order_id, include_deleted=True).tracking_log()


def list_orders(
    customer_id: str | None = None,
    venue_id: str | None = None,
    driver_id: str | None = None,
    status: str | None = None,
) -> list[Order]:
    if status is not None and status not in {s.value for s in DeliveryStatus}:
        raise ValidationError({"status": [f"Unknown delivery status: {status}"]})
    return current_domain.repository_for(Order).find_orders(
        customer_id=customer_id,
        venue_id=venue_id,
        driver_id=driver_id,
        delivery_status=status,
    )
