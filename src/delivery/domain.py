"""Delivery bounded context: order lifecycle for food delivery.

Takes a placed order from the kitchen to the customer's door: prices the
delivery, gates every status change by who is asking, and dispatches the
order to a nearby driver. Uses CQRS; Orders, Venues and Drivers are plain
aggregates persisted through the configured Protean provider.
"""

from protean.domain import Domain

from delivery.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

delivery = Domain(name="delivery")
