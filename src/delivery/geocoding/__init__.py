"""Geocoder factory.

get_geocoder() picks the adapter named by GEOCODER_ADAPTER ("fake" by
default, "nominatim" for OpenStreetMap). reverse_geocode() is the bounded
call used by order creation.
"""

from delivery import settings
from delivery.external import call_with_timeout
from delivery.geocoding.port import GeocodedAddress, Geocoder

_current_geocoder: Geocoder | None = None


def get_geocoder() -> Geocoder:
    global _current_geocoder
    if _current_geocoder is None:
        adapter = settings.geocoder_adapter()
        if adapter == "fake":
            from delivery.geocoding.fake_adapter import FakeGeocoder

            _current_geocoder = FakeGeocoder()
        elif adapter == "nominatim":
            from delivery.geocoding.nominatim_adapter import NominatimGeocoder

            _current_geocoder = NominatimGeocoder(
                settings.nominatim_url(),
                timeout=settings.external_call_timeout_seconds(),
            )
        else:
            raise ValueError(f"Unknown geocoder adapter: {adapter}")
    return _current_geocoder


def set_geocoder(geocoder: Geocoder) -> None:
    global _current_geocoder
    _current_geocoder = geocoder


def reset_geocoder() -> None:
    global _current_geocoder
    _current_geocoder = None


def reverse_geocode(latitude: float, longitude: float) -> GeocodedAddress:
    """Resolve an address, raising ServiceUnavailable on timeout or failure."""
    return call_with_timeout("geocoder", get_geocoder().reverse, latitude, longitude)
