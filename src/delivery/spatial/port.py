"""Spatial index port (abstract interface).

Keeps the last known position of every driver and answers "who is within
R km of this point". Positions are refreshed by driver location pings, so
readers must tolerate a few seconds of staleness; the index never decides
availability, it only narrows the search.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class DriverPosition:
    driver_id: str
    latitude: float
    longitude: float
    recorded_at: datetime | None = None


@dataclass(frozen=True)
class NearbyDriver:
    """A driver found by a radius search, with its great-circle distance."""

    driver_id: str
    distance_km: float


class SpatialIndex(ABC):
    @abstractmethod
    def upsert(self, driver_id: str, latitude: float, longitude: float, recorded_at: datetime | None = None) -> None:
        """Insert or move a driver."""
        ...

    @abstractmethod
    def remove(self, driver_id: str) -> None: ...

    @abstractmethod
    def position_of(self, driver_id: str) -> DriverPosition | None: ...

    @abstractmethod
    def nearby(self, latitude: float, longitude: float, radius_km: float) -> list[NearbyDriver]:
        """Drivers within ``radius_km`` of the point, nearest first."""
        ...

    @abstractmethod
    def clear(self) -> None: ...

    @abstractmethod
    def __len__(self) -> int: ...
