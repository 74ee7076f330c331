"""Geocoder port (abstract interface).

Turns coordinates into a postal address. Adapters may block on the network;
callers go through delivery.external.call_with_timeout.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class GeocodedAddress:
    street: str = "Unknown"
    city: str = "Unknown"
    state: str | None = None
    postal_code: str = "Unknown"
    country: str = "Unknown"
    formatted: str | None = None


class Geocoder(ABC):
    @abstractmethod
    def reverse(self, latitude: float, longitude: float) -> GeocodedAddress:
        """Resolve a coordinate pair to the nearest postal address."""
        ...
