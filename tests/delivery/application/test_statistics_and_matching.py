"""Application tests for nearby-driver matching, listings and statistics."""

import pytest
from delivery.driver.management import ChangeDriverStatus, SetDriverDutyStatus
from delivery.driver.matching import find_nearby_drivers, nearby_drivers_for_order
from delivery.driver.spatial_sync import rebuild_spatial_index
from delivery.driver.statistics import driver_statistics
from delivery.order.cancellation import CancelOrder
from delivery.order.locking import process_order_command
from delivery.order.queries import list_orders
from delivery.spatial import get_spatial_index
from delivery.venue.statistics import venue_statistics
from protean import current_domain
from protean.exceptions import ValidationError

VENUE_LAT, VENUE_LON = 40.7128, -74.0060


class TestNearbyDrivers:
    def test_nearest_first(self, make_driver):
        far = make_driver(name="Far", distance_km=4)
        near = make_driver(name="Near", distance_km=1)
        candidates = find_nearby_drivers(VENUE_LAT, VENUE_LON, max_distance_m=5000)
        assert [c.driver_id for c in candidates] == [near, far]
        assert candidates[0].name == "Near"
        assert candidates[0].distance_km == pytest.approx(1.0, abs=0.01)

    def test_outside_radius_excluded(self, make_driver):
        make_driver(distance_km=8)
        assert find_nearby_drivers(VENUE_LAT, VENUE_LON, max_distance_m=5000) == []

    def test_unavailable_drivers_excluded(self, make_driver):
        off_duty = make_driver(name="Off", on_duty=False)
        suspended = make_driver(name="Suspended")
        current_domain.process(SetDriverDutyStatus(driver_id=suspended, on_duty=False), asynchronous=False)
        current_domain.process(ChangeDriverStatus(driver_id=suspended, status="suspended"), asynchronous=False)
        available = make_driver(name="On")

        ids = [c.driver_id for c in find_nearby_drivers(VENUE_LAT, VENUE_LON)]
        assert ids == [available]
        assert off_duty not in ids

    def test_busy_driver_excluded(self, ready_order, make_driver, dispatch):
        driver_id = make_driver()
        dispatch(ready_order(), driver_id)
        assert find_nearby_drivers(VENUE_LAT, VENUE_LON) == []

    def test_radius_must_be_positive(self):
        with pytest.raises(ValidationError):
            find_nearby_drivers(VENUE_LAT, VENUE_LON, max_distance_m=0)

    def test_order_search_defaults_to_venue_radius(self, make_venue, make_order, make_driver):
        order_id = make_order(venue_id=make_venue(delivery_radius_km=2), distance_km=1)
        inside = make_driver(name="Inside", distance_km=2.5)
        make_driver(name="Outside", distance_km=4)
        assert [c.driver_id for c in nearby_drivers_for_order(order_id)] == [inside]

    def test_index_rebuilt_from_drivers(self, make_driver):
        driver_id = make_driver()
        get_spatial_index().clear()
        assert rebuild_spatial_index() == 1
        assert [c.driver_id for c in find_nearby_drivers(VENUE_LAT, VENUE_LON)] == [driver_id]


class TestListOrders:
    def test_filters_by_customer_and_status(self, make_venue, make_order, pay):
        venue_id = make_venue()
        mine = make_order(venue_id=venue_id)
        paid = make_order(venue_id=venue_id)
        make_order(venue_id=venue_id, customer_id="cust-002")
        pay(paid)

        assert {str(o.id) for o in list_orders(customer_id="cust-001")} == {mine, paid}
        assert [str(o.id) for o in list_orders(customer_id="cust-001", status="preparing")] == [paid]
        assert len(list_orders(venue_id=venue_id)) == 3

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            list_orders(status="lost")


class TestVenueStatistics:
    def test_counts_revenue_and_preparation(self, make_venue, make_order, ready_order, make_driver, move):
        venue_id = make_venue()
        delivered = ready_order(venue_id=venue_id)
        driver_id = make_driver()
        for status in ("dispatched", "in_transit", "delivered"):
            move(delivered, status, actor_role="driver", actor_id=driver_id)
        cancelled = make_order(venue_id=venue_id)
        process_order_command(
            CancelOrder(order_id=cancelled, actor_role="customer", actor_id="cust-001", reason="Too slow")
        )
        make_order(venue_id=venue_id)

        stats = venue_statistics(venue_id)
        assert stats.total_orders == 3
        assert stats.completed_orders == 1
        assert stats.cancelled_orders == 1
        assert stats.total_revenue == 69.0
        assert stats.avg_preparation_minutes is not None
        assert stats.avg_preparation_minutes >= 0

    def test_empty_venue(self, make_venue):
        stats = venue_statistics(make_venue())
        assert stats.total_orders == 0
        assert stats.avg_preparation_minutes is None
        assert stats.average_rating == 0.0


class TestDriverStatistics:
    def test_no_deliveries_is_fully_on_time(self, make_driver):
        stats = driver_statistics(make_driver())
        assert stats.total_deliveries == 0
        assert stats.cancellation_rate == 0.0
        assert stats.on_time_percentage == 100.0

    def test_rates_from_driver_orders(self, make_venue, ready_order, make_driver, move):
        venue_id = make_venue()
        driver_id = make_driver()

        delivered = ready_order(venue_id=venue_id)
        for status in ("dispatched", "in_transit", "delivered"):
            move(delivered, status, actor_role="driver", actor_id=driver_id)

        abandoned = ready_order(venue_id=venue_id)
        move(abandoned, "dispatched", actor_role="driver", actor_id=driver_id)
        move(abandoned, "failed", actor_role="driver", actor_id=driver_id, notes="Accident")

        stats = driver_statistics(driver_id)
        assert stats.total_deliveries == 2
        assert stats.completed_deliveries == 1
        assert stats.cancellation_rate == 50.0
        assert stats.on_time_percentage == 100.0
