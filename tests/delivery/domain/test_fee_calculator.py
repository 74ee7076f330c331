"""Tests for delivery fee calculation and fee schedule validation."""

from decimal import Decimal

import pytest
from delivery.pricing.fees import FeeSchedule, calculate_delivery_fee, validate_fee_schedule
from protean.exceptions import ValidationError


def _schedule(**overrides):
    data = {
        "base": 5,
        "distance_rates": [{"min_distance": 0, "max_distance": 5, "rate_per_km": 1}],
        "small_order_threshold": 15,
        "small_order_fee": 2,
        "service_fee_percentage": 10,
        "handling_fee": 1,
    }
    data.update(overrides)
    return FeeSchedule.from_dict(data)


class TestItemizedFee:
    def test_small_order_without_surge(self):
        fee = calculate_delivery_fee(_schedule(), 3, "12:00", 10)
        assert fee.base == Decimal("5.00")
        assert fee.distance_fee == Decimal("3.00")
        assert fee.surge_fee == Decimal("0.00")
        assert fee.small_order_fee == Decimal("2.00")
        assert fee.service_fee == Decimal("1.00")
        assert fee.handling_fee == Decimal("1.00")
        assert fee.total == Decimal("12.00")

    def test_small_order_fee_not_charged_at_threshold(self):
        fee = calculate_delivery_fee(_schedule(), 3, "12:00", 15)
        assert fee.small_order_fee == Decimal("0.00")
        assert fee.service_fee == Decimal("1.50")

    def test_total_is_sum_of_components(self):
        fee = calculate_delivery_fee(_schedule(), 2.333, "12:00", 12.345)
        components = (
            fee.base + fee.distance_fee + fee.surge_fee + fee.small_order_fee + fee.service_fee + fee.handling_fee
        )
        assert fee.total == components

    def test_components_rounded_half_up_to_cents(self):
        fee = calculate_delivery_fee(_schedule(), 3, "12:00", Decimal("10.05"))
        # 10% of 10.05 is 1.005
        assert fee.service_fee == Decimal("1.01")

    def test_breakdown_carries_every_component(self):
        fee = calculate_delivery_fee(_schedule(), 3, "12:00", 10)
        assert fee.breakdown == {
            "base_fee": 5.0,
            "distance_fee": 3.0,
            "surge_fee": 0.0,
            "small_order_fee": 2.0,
            "service_fee": 1.0,
            "handling_fee": 1.0,
        }

    def test_identical_inputs_give_identical_fees(self):
        first = calculate_delivery_fee(_schedule(), 4.2, "18:30", 22)
        second = calculate_delivery_fee(_schedule(), 4.2, "18:30", 22)
        assert first == second


class TestDistanceTiers:
    def test_first_covering_tier_applies(self):
        schedule = _schedule(
            distance_rates=[
                {"min_distance": 0, "max_distance": 3, "rate_per_km": 1},
                {"min_distance": 3.01, "max_distance": 10, "rate_per_km": 2},
            ]
        )
        assert calculate_delivery_fee(schedule, 3, "12:00", 20).distance_fee == Decimal("3.00")
        assert calculate_delivery_fee(schedule, 4, "12:00", 20).distance_fee == Decimal("8.00")

    def test_tier_bounds_are_inclusive(self):
        fee = calculate_delivery_fee(_schedule(), 5, "12:00", 20)
        assert fee.distance_fee == Decimal("5.00")
        assert fee.distance_rate == Decimal("1")

    def test_uncovered_distance_prices_as_zero(self):
        fee = calculate_delivery_fee(_schedule(), 7, "12:00", 20)
        assert fee.distance_fee == Decimal("0.00")
        assert fee.distance_rate is None

    def test_zero_distance(self):
        fee = calculate_delivery_fee(_schedule(), 0, "12:00", 20)
        assert fee.distance_fee == Decimal("0.00")

    @pytest.mark.parametrize("clock_time", ["12:00", "18:00"])
    def test_distance_fee_never_drops_within_a_tier(self, clock_time):
        schedule = _schedule(surge_windows=[{"start_time": "17:00", "end_time": "20:00", "multiplier": 1.5}])
        distances = [0, 0.4, 1, 1.01, 2.5, 3.333, 4.99, 5]
        fees = [calculate_delivery_fee(schedule, d, clock_time, 20).distance_fee for d in distances]
        assert fees == sorted(fees)


class TestSurge:
    def test_surge_scales_base_and_distance(self):
        schedule = _schedule(surge_windows=[{"start_time": "17:00", "end_time": "20:00", "multiplier": 1.5}])
        fee = calculate_delivery_fee(schedule, 3, "18:00", 20)
        assert fee.surge_multiplier == Decimal("1.5")
        assert fee.surge_fee == Decimal("2.50")
        assert fee.distance_fee == Decimal("4.50")

    def test_window_edges_are_inclusive(self):
        schedule = _schedule(surge_windows=[{"start_time": "17:00", "end_time": "20:00", "multiplier": 2}])
        assert calculate_delivery_fee(schedule, 1, "17:00", 20).surge_multiplier == Decimal("2")
        assert calculate_delivery_fee(schedule, 1, "20:00", 20).surge_multiplier == Decimal("2")
        assert calculate_delivery_fee(schedule, 1, "20:01", 20).surge_multiplier == Decimal("1")

    def test_first_matching_window_wins(self):
        schedule = _schedule(
            surge_windows=[
                {"start_time": "11:00", "end_time": "14:00", "multiplier": 1.2},
                {"start_time": "12:00", "end_time": "13:00", "multiplier": 3},
            ]
        )
        assert calculate_delivery_fee(schedule, 1, "12:30", 20).surge_multiplier == Decimal("1.2")


class TestInputValidation:
    def test_negative_distance_rejected(self):
        with pytest.raises(ValidationError) as exc:
            calculate_delivery_fee(_schedule(), -1, "12:00", 10)
        assert "distance_km" in exc.value.messages

    def test_negative_subtotal_rejected(self):
        with pytest.raises(ValidationError):
            calculate_delivery_fee(_schedule(), 1, "12:00", -5)

    def test_malformed_clock_time_rejected(self):
        with pytest.raises(ValidationError) as exc:
            calculate_delivery_fee(_schedule(), 1, "25:00", 10)
        assert "clock_time" in exc.value.messages


class TestScheduleValidation:
    def test_valid_schedule_passes(self):
        validate_fee_schedule(_schedule())

    def test_overlapping_tiers_rejected(self):
        schedule = _schedule(
            distance_rates=[
                {"min_distance": 0, "max_distance": 5, "rate_per_km": 1},
                {"min_distance": 4, "max_distance": 8, "rate_per_km": 2},
            ]
        )
        with pytest.raises(ValidationError) as exc:
            validate_fee_schedule(schedule)
        assert "distance_rates" in exc.value.messages

    def test_gaps_between_tiers_allowed(self):
        validate_fee_schedule(
            _schedule(
                distance_rates=[
                    {"min_distance": 0, "max_distance": 3, "rate_per_km": 1},
                    {"min_distance": 5, "max_distance": 8, "rate_per_km": 2},
                ]
            )
        )

    def test_surge_multiplier_below_one_rejected(self):
        schedule = _schedule(surge_windows=[{"start_time": "10:00", "end_time": "11:00", "multiplier": 0.5}])
        with pytest.raises(ValidationError) as exc:
            validate_fee_schedule(schedule)
        assert "surge_windows" in exc.value.messages

    def test_window_crossing_midnight_rejected(self):
        schedule = _schedule(surge_windows=[{"start_time": "23:00", "end_time": "01:00", "multiplier": 1.5}])
        with pytest.raises(ValidationError):
            validate_fee_schedule(schedule)

    def test_service_percentage_above_hundred_rejected(self):
        with pytest.raises(ValidationError) as exc:
            validate_fee_schedule(_schedule(service_fee_percentage=120))
        assert "service_fee_percentage" in exc.value.messages

    def test_bad_currency_rejected(self):
        with pytest.raises(ValidationError) as exc:
            validate_fee_schedule(_schedule(currency="dollars"))
        assert "currency" in exc.value.messages

    def test_every_problem_reported_at_once(self):
        with pytest.raises(ValidationError) as exc:
            validate_fee_schedule(_schedule(base=-1, handling_fee=-1))
        assert {"base", "handling_fee"} <= set(exc.value.messages)

    def test_missing_tier_keys_rejected(self):
        with pytest.raises(ValidationError):
            FeeSchedule.from_dict({"distance_rates": [{"min_distance": 0}]})

    def test_round_trips_through_dict(self):
        schedule = _schedule(surge_windows=[{"start_time": "17:00", "end_time": "20:00", "multiplier": 1.5}])
        assert FeeSchedule.from_dict(schedule.to_dict()) == schedule
