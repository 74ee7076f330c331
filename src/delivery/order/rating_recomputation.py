"""Venue and driver rating recomputation.

Averages are recomputed from every rated order, not nudged incrementally,
while the venue and driver record locks are held, so concurrent ratings
cannot lose each other's contribution.
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from delivery.concurrency import record_key, run_exclusively
from delivery.domain import delivery
from delivery.driver.driver import Driver
from delivery.order.events import OrderRated
from delivery.order.order import Order
from delivery.venue.venue import Venue

logger = structlog.get_logger(__name__)


def average(values: list[int]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def recompute_venue_rating(venue_id: str) -> None:
    orders = current_domain.repository_for(Order).find_rated_for_venue(venue_id)
    ratings = [order.venue_rating or order.rating for order in orders]
    venue_repo = current_domain.repository_for(Venue)
    venue = venue_repo.get(venue_id)
    venue.update_rating(average(ratings), len(ratings))
    venue_repo.add(venue)


def recompute_driver_rating(driver_id: str) -> None:
    ratings = [order.driver_rating for order in current_domain.repository_for(Order).find_rated_for_driver(driver_id)]
    driver_repo = current_domain.repository_for(Driver)
    driver = driver_repo.get(driver_id)
    driver.update_rating(average(ratings), len(ratings))
    driver_repo.add(driver)


@delivery.event_handler(part_of=Order)
class RatingRecomputation:
    @handle(OrderRated)
    def on_order_rated(self, event: OrderRated) -> None:
        venue_id = str(event.venue_id)
        run_exclusively([record_key("venue", venue_id)], recompute_venue_rating, venue_id)
        if event.driver_id and event.driver_rating is not None:
            driver_id = str(event.driver_id)
            run_exclusively([record_key("driver", driver_id)], recompute_driver_rating, driver_id)
        logger.info("Ratings recomputed", order_id=str(event.order_id), venue_id=venue_id, driver_id=event.driver_id)
