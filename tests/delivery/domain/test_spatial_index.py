"""Tests for the grid spatial index and great-circle distance."""

from datetime import UTC, datetime, timedelta

import pytest
from delivery.spatial.distance import haversine_km
from delivery.spatial.grid_adapter import GridSpatialIndex

LAT, LON = 40.7128, -74.0060


def _north(km):
    return LAT + km / 111.195, LON


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(LAT, LON, LAT, LON) == 0.0

    def test_one_degree_of_latitude(self):
        assert haversine_km(0, 0, 1, 0) == pytest.approx(111.19, abs=0.01)

    def test_symmetric(self):
        assert haversine_km(LAT, LON, 51.5074, -0.1278) == haversine_km(51.5074, -0.1278, LAT, LON)

    def test_rounded_to_two_places(self):
        distance = haversine_km(LAT, LON, *_north(3.14159))
        assert distance == round(distance, 2)


class TestGridSpatialIndex:
    def test_nearby_sorted_by_distance(self):
        index = GridSpatialIndex()
        index.upsert("far", *_north(4))
        index.upsert("near", *_north(1))
        index.upsert("mid", *_north(2))
        assert [hit.driver_id for hit in index.nearby(LAT, LON, 5)] == ["near", "mid", "far"]

    def test_radius_excludes_distant_drivers(self):
        index = GridSpatialIndex()
        index.upsert("inside", *_north(2))
        index.upsert("outside", *_north(8))
        assert [hit.driver_id for hit in index.nearby(LAT, LON, 5)] == ["inside"]

    def test_upsert_moves_a_driver(self):
        index = GridSpatialIndex()
        index.upsert("d1", *_north(8))
        index.upsert("d1", *_north(1))
        assert len(index) == 1
        assert [hit.driver_id for hit in index.nearby(LAT, LON, 2)] == ["d1"]

    def test_stale_ping_does_not_move_driver_back(self):
        index = GridSpatialIndex()
        now = datetime.now(UTC)
        index.upsert("d1", *_north(1), recorded_at=now)
        index.upsert("d1", *_north(9), recorded_at=now - timedelta(seconds=30))
        assert index.position_of("d1").latitude == pytest.approx(_north(1)[0])

    def test_remove(self):
        index = GridSpatialIndex()
        index.upsert("d1", *_north(1))
        index.remove("d1")
        index.remove("unknown")
        assert index.nearby(LAT, LON, 5) == []

    def test_large_radius_falls_back_to_scan(self):
        index = GridSpatialIndex(cell_km=0.5)
        index.upsert("d1", 51.5074, -0.1278)
        hits = index.nearby(LAT, LON, 6000)
        assert [hit.driver_id for hit in hits] == ["d1"]

    def test_matches_linear_scan(self):
        index = GridSpatialIndex(cell_km=0.7)
        points = {f"d{i}": (LAT + (i % 7) * 0.01 - 0.03, LON + (i // 7) * 0.012 - 0.04) for i in range(49)}
        for driver_id, (lat, lon) in points.items():
            index.upsert(driver_id, lat, lon)

        expected = sorted(
            (haversine_km(LAT, LON, lat, lon), driver_id)
            for driver_id, (lat, lon) in points.items()
            if haversine_km(LAT, LON, lat, lon) <= 3
        )
        assert [(hit.distance_km, hit.driver_id) for hit in index.nearby(LAT, LON, 3)] == expected

    def test_cell_size_must_be_positive(self):
        with pytest.raises(ValueError):
            GridSpatialIndex(cell_km=0)
