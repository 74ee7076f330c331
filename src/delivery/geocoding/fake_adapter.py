"""Configurable fake geocoder for development and testing.

Returns a canned address, or fails / stalls on demand so the timeout and
failure paths of order creation can be exercised without a network.
"""

import time

from delivery.geocoding.port import GeocodedAddress, Geocoder


class FakeGeocoder(Geocoder):
    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Geocoder unavailable"
        self.delay_seconds: float = 0.0
        self.address = GeocodedAddress(
            street="1 Test Street",
            city="Testville",
            state="TS",
            postal_code="00000",
            country="Testland",
        )
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Geocoder unavailable",
        delay_seconds: float = 0.0,
    ) -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.delay_seconds = delay_seconds

    def reverse(self, latitude: float, longitude: float) -> GeocodedAddress:
        self.calls.append({"method": "reverse", "latitude": latitude, "longitude": longitude})
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if not self.should_succeed:
            raise RuntimeError(self.failure_reason)
        return GeocodedAddress(
            street=self.address.street,
            city=self.address.city,
            state=self.address.state,
            postal_code=self.address.postal_code,
            country=self.address.country,
            formatted=f"{self.address.street}, {self.address.city} ({latitude:.5f}, {longitude:.5f})",
        )
