"""Runtime tunables read from the environment.

Values are read on every call so tests can monkeypatch the environment
without reloading modules.
"""

import os
from decimal import Decimal


def tax_rate() -> Decimal:
    """Flat tax applied to the order subtotal."""
    return Decimal(os.environ.get("TAX_RATE", "0.10"))


def lock_timeout_seconds() -> float:
    return float(os.environ.get("ORDER_LOCK_TIMEOUT_SECONDS", "5"))


def external_call_timeout_seconds() -> float:
    """Upper bound for a single geocoder or payment gateway call."""
    return float(os.environ.get("EXTERNAL_CALL_TIMEOUT_SECONDS", "3"))


def courier_speed_kmh() -> float:
    return float(os.environ.get("COURIER_SPEED_KMH", "20"))


def spatial_index_cell_km() -> float:
    return float(os.environ.get("SPATIAL_INDEX_CELL_KM", "1.0"))


def local_timezone() -> str | None:
    """IANA zone for the fee clock; None means the server's local time."""
    return os.environ.get("LOCAL_TIMEZONE") or None


def geocoder_adapter() -> str:
    return os.environ.get("GEOCODER_ADAPTER", "fake")


def nominatim_url() -> str:
    return os.environ.get("NOMINATIM_URL", "https://nominatim.openstreetmap.org")


def payment_gateway_adapter() -> str:
    return os.environ.get("PAYMENT_GATEWAY_ADAPTER", "fake")


def is_production() -> bool:
    return os.environ.get("PROTEAN_ENV") == "production"
