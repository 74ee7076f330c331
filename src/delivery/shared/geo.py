"""Location value objects shared by orders, venues and drivers."""

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Float, String

from delivery.domain import delivery
from delivery.spatial.distance import haversine_km


@delivery.value_object
class GeoPoint:
    """Latitude/longitude pair in decimal degrees (WGS84)."""

    latitude = Float(required=True, min_value=-90.0, max_value=90.0)
    longitude = Float(required=True, min_value=-180.0, max_value=180.0)

    @invariant.post
    def both_coordinates_required(self):
        if self.latitude is None or self.longitude is None:
            raise ValidationError({"location": ["Both latitude and longitude are required"]})

    def distance_km_to(self, other: "GeoPoint") -> float:
        return haversine_km(self.latitude, self.longitude, other.latitude, other.longitude)


@delivery.value_object
class PostalAddress:
    """Reverse-geocoded drop-off address."""

    street = String(max_length=255, default="Unknown")
    city = String(max_length=100, default="Unknown")
    state = String(max_length=100)
    postal_code = String(max_length=20, default="Unknown")
    country = String(max_length=100, default="Unknown")
    unit_number = String(max_length=50)
    formatted = String(max_length=500)
