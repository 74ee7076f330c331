"""In-memory geohash-style grid index of driver positions.

The globe is cut into square-ish cells of ``cell_km`` on a side (measured
along a meridian). A radius query visits only the cells overlapping the
query's bounding box, then applies the exact haversine filter. When the box
would touch more cells than there are drivers (near the poles, huge radii,
across the antimeridian) a linear scan is cheaper and is used instead.
"""

import math
import threading
from collections import defaultdict
from datetime import datetime

from delivery.spatial.distance import KM_PER_DEGREE_LAT, haversine_km
from delivery.spatial.port import DriverPosition, NearbyDriver, SpatialIndex


class GridSpatialIndex(SpatialIndex):
    def __init__(self, cell_km: float = 1.0) -> None:
        if cell_km <= 0:
            raise ValueError("cell_km must be positive")
        self._cell_deg = cell_km / KM_PER_DEGREE_LAT
        self._positions: dict[str, DriverPosition] = {}
        self._cells: dict[tuple[int, int], set[str]] = defaultdict(set)
        self._lock = threading.RLock()

    def _cell_of(self, latitude: float, longitude: float) -> tuple[int, int]:
        return (math.floor(latitude / self._cell_deg), math.floor(longitude / self._cell_deg))

    def upsert(self, driver_id: str, latitude: float, longitude: float, recorded_at: datetime | None = None) -> None:
        with self._lock:
            previous = self._positions.get(driver_id)
            # Out-of-order pings must not move a driver backwards in time
            if previous and previous.recorded_at and recorded_at and recorded_at < previous.recorded_at:
                return
            if previous:
                self._discard_from_cell(previous)
            position = DriverPosition(driver_id, latitude, longitude, recorded_at)
            self._positions[driver_id] = position
            self._cells[self._cell_of(latitude, longitude)].add(driver_id)

    def _discard_from_cell(self, position: DriverPosition) -> None:
        cell = self._cell_of(position.latitude, position.longitude)
        members = self._cells.get(cell)
        if members is not None:
            members.discard(position.driver_id)
            if not members:
                del self._cells[cell]

    def remove(self, driver_id: str) -> None:
        with self._lock:
            position = self._positions.pop(driver_id, None)
            if position:
                self._discard_from_cell(position)

    def position_of(self, driver_id: str) -> DriverPosition | None:
        return self._positions.get(driver_id)

    def _candidate_ids(self, latitude: float, longitude: float, radius_km: float) -> list[str]:
        lat_span = radius_km / KM_PER_DEGREE_LAT
        cos_lat = math.cos(math.radians(min(abs(latitude) + lat_span, 90.0)))
        lon_span = 360.0 if cos_lat < 1e-6 else radius_km / (KM_PER_DEGREE_LAT * cos_lat)

        min_lon, max_lon = longitude - lon_span, longitude + lon_span
        if min_lon < -180.0 or max_lon > 180.0:
            return list(self._positions)

        lat_lo, lon_lo = self._cell_of(latitude - lat_span, min_lon)
        lat_hi, lon_hi = self._cell_of(latitude + lat_span, max_lon)
        if (lat_hi - lat_lo + 1) * (lon_hi - lon_lo + 1) > max(len(self._positions), 1):
            return list(self._positions)

        ids: list[str] = []
        for lat_cell in range(lat_lo, lat_hi + 1):
            for lon_cell in range(lon_lo, lon_hi + 1):
                ids.extend(self._cells.get((lat_cell, lon_cell), ()))
        return ids

    def nearby(self, latitude: float, longitude: float, radius_km: float) -> list[NearbyDriver]:
        if radius_km < 0:
            return []
        with self._lock:
            found = []
            for driver_id in self._candidate_ids(latitude, longitude, radius_km):
                position = self._positions[driver_id]
                distance = haversine_km(latitude, longitude, position.latitude, position.longitude)
                if distance <= radius_km:
                    found.append(NearbyDriver(driver_id=driver_id, distance_km=distance))

        found.sort(key=lambda candidate: (candidate.distance_km, candidate.driver_id))
        return found

    def clear(self) -> None:
        with self._lock:
            self._positions.clear()
            self._cells.clear()

    def __len__(self) -> int:
        return len(self._positions)
