"""Nearest available driver search.

The spatial index narrows the search to drivers whose last known position
is within the radius, nearest first. Each hit is then checked against its
Driver record, since index positions may lag a few seconds behind and the
index knows nothing about availability.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from delivery.driver.driver import Driver
from delivery.order.order import Order
from delivery.shared.geo import GeoPoint
from delivery.spatial import get_spatial_index
from delivery.spatial.distance import meters_to_km
from delivery.venue.venue import Venue

logger = structlog.get_logger(__name__)

DEFAULT_SEARCH_RADIUS_M = 5000


@dataclass(frozen=True)
class DriverCandidate:
    driver_id: str
    name: str
    distance_km: float
    latitude: float
    longitude: float
    average_rating: float


def find_nearby_drivers(latitude: float, longitude: float, max_distance_m: float = DEFAULT_SEARCH_RADIUS_M):
    """Dispatchable drivers within ``max_distance_m`` of the point, nearest first."""
    if max_distance_m is None or max_distance_m <= 0:
        raise ValidationError({"max_distance_m": ["Search radius must be positive"]})
    point = GeoPoint(latitude=latitude, longitude=longitude)

    repo = current_domain.repository_for(Driver)
    candidates = []
    for hit in get_spatial_index().nearby(point.latitude, point.longitude, meters_to_km(max_distance_m)):
        try:
            driver = repo.get(hit.driver_id)
        except ObjectNotFoundError:
            logger.warning("Spatial index holds an unknown driver", driver_id=hit.driver_id)
            continue
        if not driver.is_dispatchable or driver.current_location is None:
            continue
        candidates.append(
            DriverCandidate(
                driver_id=str(driver.id),
                name=driver.name,
                distance_km=hit.distance_km,
                latitude=driver.current_location.latitude,
                longitude=driver.current_location.longitude,
                average_rating=driver.average_rating or 0.0,
            )
        )
    return candidates


def nearby_drivers_for_order(order_id: str, max_distance_m: float | None = None):
    """Candidates around an order's drop-off; the radius defaults to the venue's."""
    order = current_domain.repository_for(Order).get(order_id)
    if max_distance_m is None:
        venue = current_domain.repository_for(Venue).get(order.venue_id)
        max_distance_m = venue.delivery_radius_km * 1000
    return find_nearby_drivers(
        order.dropoff_location.latitude,
        order.dropoff_location.longitude,
        max_distance_m=max_distance_m,
    )
