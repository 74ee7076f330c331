"""Venue order statistics."""

from dataclasses import dataclass
from datetime import UTC

from protean.utils.globals import current_domain

from delivery.order.order import Order
from delivery.order.state_machine import DeliveryStatus
from delivery.venue.venue import Venue


@dataclass(frozen=True)
class VenueStatistics:
    venue_id: str
    total_orders: int
    completed_orders: int
    cancelled_orders: int
    total_revenue: float
    avg_preparation_minutes: float | None
    average_rating: float
    rating_count: int


def _minutes_between(start, end) -> float:
    if start.tzinfo is None:
        start = start.replace(tzinfo=UTC)
    if end.tzinfo is None:
        end = end.replace(tzinfo=UTC)
    return (end - start).total_seconds() / 60


def venue_statistics(venue_id: str) -> VenueStatistics:
    """Aggregates over the venue's orders that are not deleted.

    Preparation time runs from placement to hand-over at the door, so it is
    only known for delivered orders; None when there are none.
    """
    venue = current_domain.repository_for(Venue).get(venue_id)
    orders = current_domain.repository_for(Order).find_orders(venue_id=str(venue.id))

    completed = [order for order in orders if order.delivery_status == DeliveryStatus.DELIVERED.value]
    cancelled = [order for order in orders if order.cancellation is not None]
    prep_minutes = [
        _minutes_between(order.created_at, order.actual_delivery_at)
        for order in completed
        if order.created_at and order.actual_delivery_at
    ]

    return VenueStatistics(
        venue_id=str(venue.id),
        total_orders=len(orders),
        completed_orders=len(completed),
        cancelled_orders=len(cancelled),
        total_revenue=round(sum(order.total_amount or 0.0 for order in orders), 2),
        avg_preparation_minutes=round(sum(prep_minutes) / len(prep_minutes), 2) if prep_minutes else None,
        average_rating=venue.average_rating or 0.0,
        rating_count=venue.rating_count or 0,
    )
