"""Keeps the spatial index in step with Driver positions.

Reacts to Driver events after they are committed. The index only narrows
searches; availability is re-checked against the Driver record at match
time, so a late or missed update costs accuracy, never correctness.
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from delivery.domain import delivery
from delivery.driver.driver import Driver, DriverStatus
from delivery.driver.events import DriverLocationUpdated, DriverRegistered, DriverStatusChanged
from delivery.spatial import get_spatial_index

logger = structlog.get_logger(__name__)

QUERY_LIMIT = 10_000

_UNINDEXED_STATUSES = {DriverStatus.INACTIVE.value, DriverStatus.REJECTED.value}


@delivery.event_handler(part_of=Driver)
class DriverSpatialIndexSync:
    @handle(DriverRegistered)
    def on_driver_registered(self, event: DriverRegistered) -> None:
        if event.latitude is None or event.longitude is None:
            return
        get_spatial_index().upsert(str(event.driver_id), event.latitude, event.longitude, event.registered_at)

    @handle(DriverLocationUpdated)
    def on_location_updated(self, event: DriverLocationUpdated) -> None:
        get_spatial_index().upsert(str(event.driver_id), event.latitude, event.longitude, event.recorded_at)

    @handle(DriverStatusChanged)
    def on_status_changed(self, event: DriverStatusChanged) -> None:
        if event.new_status in _UNINDEXED_STATUSES:
            get_spatial_index().remove(str(event.driver_id))


def rebuild_spatial_index() -> int:
    """Reload every located, indexable driver into the active index."""
    index = get_spatial_index()
    index.clear()
    drivers = current_domain.repository_for(Driver)._dao.query.limit(QUERY_LIMIT).all().items
    for driver in drivers:
        if driver.current_location is None or driver.status in _UNINDEXED_STATUSES:
            continue
        index.upsert(
            str(driver.id),
            driver.current_location.latitude,
            driver.current_location.longitude,
        )
    logger.info("Spatial index rebuilt", drivers=len(index))
    return len(index)
