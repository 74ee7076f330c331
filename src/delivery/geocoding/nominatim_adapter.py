"""Reverse geocoding against an OpenStreetMap Nominatim server."""

import httpx

from delivery.geocoding.port import GeocodedAddress, Geocoder


class NominatimGeocoder(Geocoder):
    def __init__(self, base_url: str, timeout: float = 3.0, user_agent: str = "delivery-engine") -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent

    def reverse(self, latitude: float, longitude: float) -> GeocodedAddress:
        with httpx.Client(timeout=httpx.Timeout(self.timeout, connect=2.0)) as client:
            response = client.get(
                f"{self.base_url}/reverse",
                params={"lat": latitude, "lon": longitude, "format": "jsonv2", "addressdetails": 1},
                headers={"User-Agent": self.user_agent},
            )
            response.raise_for_status()
            payload = response.json()

        if "error" in payload:
            raise ValueError(payload["error"])

        address = payload.get("address", {})
        street = " ".join(part for part in (address.get("house_number"), address.get("road")) if part)
        return GeocodedAddress(
            street=street or "Unknown",
            city=address.get("city") or address.get("town") or address.get("village") or "Unknown",
            state=address.get("state"),
            postal_code=address.get("postcode") or "Unknown",
            country=address.get("country") or "Unknown",
            formatted=payload.get("display_name"),
        )
