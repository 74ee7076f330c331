"""Order rating: command and handler.

Ratings are written on the Order once; the OrderRated event drives the
venue and driver average recomputation (see rating_recomputation.py).
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.order.order import Order

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class RateOrder:
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    rating = Integer(required=True, min_value=1, max_value=5)
    driver_rating = Integer(min_value=1, max_value=5)
    venue_rating = Integer(min_value=1, max_value=5)
    feedback = String(max_length=1000)


@delivery.command_handler(part_of=Order)
class RateOrderHandler:
    @handle(RateOrder)
    def rate_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.rate(
            customer_id=command.customer_id,
            rating=command.rating,
            driver_rating=command.driver_rating,
            venue_rating=command.venue_rating,
            feedback=command.feedback,
        )
        repo.add(order)
        logger.info("Order rated", order_id=str(order.id), rating=command.rating)
