"""Application tests for order status updates and driver side effects."""

import pytest
from delivery.driver.driver import Driver
from delivery.errors import (
    ConcurrentModification,
    DriverUnavailable,
    InvalidTransition,
    PaymentRequired,
    Unauthorized,
)
from delivery.order.locking import process_order_command
from delivery.order.order import Order
from delivery.order.queries import tracking_log
from delivery.order.tracking import RecordDriverLocation
from delivery.spatial import get_spatial_index
from protean import current_domain


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _driver(driver_id):
    return current_domain.repository_for(Driver).get(driver_id)


class TestKitchenFlow:
    def test_payment_confirmation_starts_preparation(self, make_order, pay):
        order_id = make_order()
        pay(order_id)
        order = _order(order_id)
        assert order.payment_status == "paid"
        assert order.delivery_status == "preparing"

    def test_venue_marks_ready(self, make_order, pay, move):
        order_id = make_order()
        pay(order_id)
        move(order_id, "ready", notes="Bagged")
        assert _order(order_id).delivery_status == "ready"

    def test_pending_straight_to_ready_rejected(self, make_order, move):
        order_id = make_order()
        with pytest.raises(InvalidTransition):
            move(order_id, "ready")

    def test_unpaid_order_cannot_start(self, make_order, move):
        order_id = make_order()
        with pytest.raises(PaymentRequired):
            move(order_id, "preparing")

    def test_other_venue_rejected(self, make_order, pay, move):
        order_id = make_order()
        pay(order_id)
        with pytest.raises(Unauthorized):
            move(order_id, "ready", actor_id="owner-999")

    def test_customer_cannot_advance(self, make_order, pay, move):
        order_id = make_order()
        pay(order_id)
        with pytest.raises(Unauthorized):
            move(order_id, "ready", actor_role="customer", actor_id="cust-001")

    def test_rejection_leaves_order_untouched(self, make_order, move):
        order_id = make_order()
        version = _order(order_id).version
        with pytest.raises(InvalidTransition):
            move(order_id, "delivered")
        assert _order(order_id).version == version
        assert len(tracking_log(order_id)) == 1


class TestDriverFlow:
    def test_driver_self_accepts_and_delivers(self, ready_order, make_driver, move):
        order_id = ready_order()
        driver_id = make_driver()

        move(order_id, "dispatched", actor_role="driver", actor_id=driver_id)
        driver = _driver(driver_id)
        assert _order(order_id).driver_id == driver_id
        assert driver.current_order_id == order_id
        assert driver.is_available is False

        move(order_id, "in_transit", actor_role="driver", actor_id=driver_id, latitude=40.72, longitude=-74.0)
        move(order_id, "delivered", actor_role="driver", actor_id=driver_id)

        order = _order(order_id)
        assert order.delivery_status == "delivered"
        assert order.actual_delivery_at is not None
        driver = _driver(driver_id)
        assert driver.current_order_id is None
        assert driver.is_available is True
        assert driver.completed_deliveries == 1

    def test_reported_position_moves_driver(self, ready_order, make_driver, move):
        order_id = ready_order()
        driver_id = make_driver()
        move(order_id, "dispatched", actor_role="driver", actor_id=driver_id)
        move(order_id, "in_transit", actor_role="driver", actor_id=driver_id, latitude=40.75, longitude=-73.99)

        assert _driver(driver_id).current_location.latitude == 40.75
        assert get_spatial_index().position_of(driver_id).latitude == 40.75
        assert tracking_log(order_id)[-1].location.latitude == 40.75

    def test_off_duty_driver_cannot_self_accept(self, ready_order, make_driver, move):
        order_id = ready_order()
        driver_id = make_driver(on_duty=False)
        with pytest.raises(DriverUnavailable):
            move(order_id, "dispatched", actor_role="driver", actor_id=driver_id)
        assert _order(order_id).delivery_status == "ready"

    def test_other_driver_cannot_deliver(self, ready_order, make_driver, move):
        order_id = ready_order()
        driver_id = make_driver()
        intruder = make_driver(name="Eve")
        move(order_id, "dispatched", actor_role="driver", actor_id=driver_id)
        with pytest.raises(Unauthorized):
            move(order_id, "in_transit", actor_role="driver", actor_id=intruder)

    def test_failure_frees_the_driver(self, ready_order, make_driver, move):
        order_id = ready_order()
        driver_id = make_driver()
        move(order_id, "dispatched", actor_role="driver", actor_id=driver_id)
        move(order_id, "failed", actor_role="driver", actor_id=driver_id, notes="Flat tyre")

        order = _order(order_id)
        assert order.cancellation.cancelled_by == "driver"
        assert order.cancellation.reason == "Flat tyre"
        driver = _driver(driver_id)
        assert driver.current_order_id is None
        assert driver.completed_deliveries == 0

    def test_location_pings_are_tracked(self, ready_order, make_driver, move):
        order_id = ready_order()
        driver_id = make_driver()
        move(order_id, "dispatched", actor_role="driver", actor_id=driver_id)
        process_order_command(
            RecordDriverLocation(order_id=order_id, driver_id=driver_id, latitude=40.73, longitude=-74.0)
        )
        entry = tracking_log(order_id)[-1]
        assert entry.status == "dispatched"
        assert entry.location.latitude == 40.73
        assert get_spatial_index().position_of(driver_id).latitude == 40.73

    def test_unassigned_driver_cannot_ping(self, ready_order, make_driver, move):
        order_id = ready_order()
        driver_id = make_driver()
        move(order_id, "dispatched", actor_role="driver", actor_id=driver_id)
        with pytest.raises(Unauthorized):
            process_order_command(
                RecordDriverLocation(order_id=order_id, driver_id=make_driver(name="Eve"), latitude=40.7, longitude=-74)
            )


class TestVersionCheck:
    def test_matching_version_accepted(self, make_order, pay, move):
        order_id = make_order()
        pay(order_id)
        version = _order(order_id).version
        move(order_id, "ready", expected_version=version)
        assert _order(order_id).version == version + 1

    def test_stale_version_rejected(self, make_order, pay, move):
        order_id = make_order()
        pay(order_id)
        version = _order(order_id).version
        move(order_id, "ready")
        with pytest.raises(ConcurrentModification):
            move(order_id, "failed", expected_version=version)
        assert _order(order_id).delivery_status == "ready"


class TestTrackingLog:
    def test_log_is_append_only_and_ordered(self, ready_order):
        order_id = ready_order()
        log = tracking_log(order_id)
        assert [entry.sequence for entry in log] == [1, 2, 3]
        assert [entry.status for entry in log] == ["pending", "preparing", "ready"]
        assert [entry.actor_role for entry in log] == ["customer", "system", "venue"]
