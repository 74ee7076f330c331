"""Delivery fee calculation.

A venue's fee schedule, the delivery distance, the local clock time and the
order subtotal go in; an itemized fee comes out. Everything here is pure:
no clock reads, no I/O, identical inputs give identical output.

Arithmetic runs on Decimal at full precision. Each component is rounded
half-up to cents only when the result is built, and ``total`` is the sum of
the rounded components, so a receipt always adds up.
"""

import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from protean.exceptions import ValidationError

CENTS = Decimal("0.01")
ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

_CLOCK_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def to_decimal(value, field_name: str = "value") -> Decimal:
    """Convert a JSON number (or numeric string) to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValidationError({field_name: ["A number is required"]})
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError({field_name: [f"'{value}' is not a number"]}) from None


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def is_clock_time(value) -> bool:
    return isinstance(value, str) and bool(_CLOCK_RE.match(value))


# ---------------------------------------------------------------------------
# Fee schedule
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class DistanceRate:
    """Per-km rate applied when ``min_distance <= d <= max_distance``."""

    min_distance: Decimal
    max_distance: Decimal
    rate_per_km: Decimal

    def covers(self, distance_km: Decimal) -> bool:
        return self.min_distance <= distance_km <= self.max_distance


@dataclass(frozen=True)
class SurgeWindow:
    """Time-of-day window (inclusive, ``HH:MM``) with a fee multiplier."""

    start_time: str
    end_time: str
    multiplier: Decimal

    def covers(self, clock_time: str) -> bool:
        return self.start_time <= clock_time <= self.end_time


@dataclass(frozen=True)
class FeeSchedule:
    base: Decimal = ZERO
    distance_rates: tuple[DistanceRate, ...] = ()
    surge_windows: tuple[SurgeWindow, ...] = ()
    small_order_threshold: Decimal = ZERO
    small_order_fee: Decimal = ZERO
    service_fee_percentage: Decimal = ZERO
    handling_fee: Decimal = ZERO
    currency: str = "USD"

    @classmethod
    def from_dict(cls, data: dict) -> "FeeSchedule":
        """Build a schedule from its JSON form. Shape errors raise ValidationError."""
        data = data or {}
        try:
            rates = tuple(
                DistanceRate(
                    min_distance=to_decimal(r["min_distance"], "distance_rates"),
                    max_distance=to_decimal(r["max_distance"], "distance_rates"),
                    rate_per_km=to_decimal(r["rate_per_km"], "distance_rates"),
                )
                for r in data.get("distance_rates", [])
            )
            windows = tuple(
                SurgeWindow(
                    start_time=w["start_time"],
                    end_time=w["end_time"],
                    multiplier=to_decimal(w["multiplier"], "surge_windows"),
                )
                for w in data.get("surge_windows", [])
            )
        except (KeyError, TypeError) as exc:
            raise ValidationError({"fee_schedule": [f"Malformed fee schedule entry: {exc}"]}) from None

        return cls(
            base=to_decimal(data.get("base", 0), "base"),
            distance_rates=rates,
            surge_windows=windows,
            small_order_threshold=to_decimal(data.get("small_order_threshold", 0), "small_order_threshold"),
            small_order_fee=to_decimal(data.get("small_order_fee", 0), "small_order_fee"),
            service_fee_percentage=to_decimal(data.get("service_fee_percentage", 0), "service_fee_percentage"),
            handling_fee=to_decimal(data.get("handling_fee", 0), "handling_fee"),
            currency=data.get("currency", "USD"),
        )

    def to_dict(self) -> dict:
        return {
            "base": float(self.base),
            "distance_rates": [
                {
                    "min_distance": float(r.min_distance),
                    "max_distance": float(r.max_distance),
                    "rate_per_km": float(r.rate_per_km),
                }
                for r in self.distance_rates
            ],
            "surge_windows": [
                {"start_time": w.start_time, "end_time": w.end_time, "multiplier": float(w.multiplier)}
                for w in self.surge_windows
            ],
            "small_order_threshold": float(self.small_order_threshold),
            "small_order_fee": float(self.small_order_fee),
            "service_fee_percentage": float(self.service_fee_percentage),
            "handling_fee": float(self.handling_fee),
            "currency": self.currency,
        }


def validate_fee_schedule(schedule: FeeSchedule) -> None:
    """Reject schedules that cannot be priced sensibly.

    Gaps between distance tiers are allowed (they price as zero); overlaps
    are not, since "first matching tier" would then depend on list order.
    """
    errors: dict[str, list[str]] = {}

    def _add(key, message):
        errors.setdefault(key, []).append(message)

    for name in ("base", "small_order_threshold", "small_order_fee", "handling_fee"):
        if getattr(schedule, name) < ZERO:
            _add(name, f"{name} cannot be negative")

    if not ZERO <= schedule.service_fee_percentage <= HUNDRED:
        _add("service_fee_percentage", "Service fee percentage must be between 0 and 100")

    if not isinstance(schedule.currency, str) or not _CURRENCY_RE.match(schedule.currency):
        _add("currency", "Currency must be a 3-letter ISO code")

    for rate in schedule.distance_rates:
        if rate.min_distance < ZERO or rate.rate_per_km < ZERO:
            _add("distance_rates", "Distances and rates cannot be negative")
        if rate.min_distance > rate.max_distance:
            _add("distance_rates", f"Tier {rate.min_distance}-{rate.max_distance} has min above max")

    ordered = sorted(schedule.distance_rates, key=lambda r: r.min_distance)
    for lower, upper in zip(ordered, ordered[1:]):
        if upper.min_distance <= lower.max_distance:
            _add(
                "distance_rates",
                f"Tiers {lower.min_distance}-{lower.max_distance} and "
                f"{upper.min_distance}-{upper.max_distance} overlap",
            )

    for window in schedule.surge_windows:
        if not (is_clock_time(window.start_time) and is_clock_time(window.end_time)):
            _add("surge_windows", "Surge window times must be HH:MM")
        elif window.start_time > window.end_time:
            _add(
                "surge_windows",
                f"Surge window {window.start_time}-{window.end_time} crosses midnight; split it in two",
            )
        if window.multiplier < ONE:
            _add("surge_windows", "Surge multiplier must be at least 1")

    if errors:
        raise ValidationError(errors)


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class DeliveryFee:
    """Itemized delivery fee. ``total`` is the sum of the six charged components."""

    base: Decimal
    distance_fee: Decimal
    surge_fee: Decimal
    small_order_fee: Decimal
    service_fee: Decimal
    handling_fee: Decimal
    total: Decimal
    currency: str
    surge_multiplier: Decimal = ONE
    distance_rate: Decimal | None = None
    zone_fee: Decimal = ZERO
    discount: Decimal = ZERO
    is_free: bool = False
    breakdown: dict = field(default_factory=dict, compare=False)


def _rate_per_km(rates, distance_km: Decimal) -> Decimal | None:
    for rate in rates:
        if rate.covers(distance_km):
            return rate.rate_per_km
    return None


def _surge_multiplier(windows, clock_time: str) -> Decimal:
    for window in windows:
        if window.covers(clock_time):
            return window.multiplier
    return ONE


def calculate_delivery_fee(schedule: FeeSchedule, distance_km, clock_time: str, subtotal) -> DeliveryFee:
    distance_km = to_decimal(distance_km, "distance_km")
    subtotal = to_decimal(subtotal, "subtotal")
    if distance_km < ZERO:
        raise ValidationError({"distance_km": ["Distance cannot be negative"]})
    if subtotal < ZERO:
        raise ValidationError({"subtotal": ["Subtotal cannot be negative"]})
    if not is_clock_time(clock_time):
        raise ValidationError({"clock_time": [f"'{clock_time}' is not a HH:MM time"]})

    rate = _rate_per_km(schedule.distance_rates, distance_km)
    distance_fee = rate * distance_km if rate is not None else ZERO

    surge = _surge_multiplier(schedule.surge_windows, clock_time)

    small_order_fee = schedule.small_order_fee if subtotal < schedule.small_order_threshold else ZERO
    service_fee = subtotal * schedule.service_fee_percentage / HUNDRED

    base = to_cents(schedule.base)
    surge_fee = to_cents(schedule.base * (surge - ONE))
    distance_fee = to_cents(distance_fee * surge)
    small_order_fee = to_cents(small_order_fee)
    service_fee = to_cents(service_fee)
    handling_fee = to_cents(schedule.handling_fee)

    total = base + surge_fee + distance_fee + small_order_fee + service_fee + handling_fee

    return DeliveryFee(
        base=base,
        distance_fee=distance_fee,
        surge_fee=surge_fee,
        small_order_fee=small_order_fee,
        service_fee=service_fee,
        handling_fee=handling_fee,
        total=total,
        currency=schedule.currency,
        surge_multiplier=surge,
        distance_rate=rate,
        breakdown={
            "base_fee": float(base),
            "distance_fee": float(distance_fee),
            "surge_fee": float(surge_fee),
            "small_order_fee": float(small_order_fee),
            "service_fee": float(service_fee),
            "handling_fee": float(handling_fee),
        },
    )
