"""Venue domain events."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from delivery.domain import delivery


@delivery.event(part_of="Venue")
class VenueRegistered:
    __version__ = 1

    venue_id = Identifier(required=True)
    owner_id = Identifier(required=True)
    name = String(required=True)
    latitude = Float(required=True)
    longitude = Float(required=True)
    delivery_radius_km = Float(required=True)
    registered_at = DateTime(required=True)


@delivery.event(part_of="Venue")
class VenueFeeScheduleUpdated:
    __version__ = 1

    venue_id = Identifier(required=True)
    fee_schedule = Text(required=True)  # JSON
    updated_at = DateTime(required=True)


@delivery.event(part_of="Venue")
class VenueAvailabilityChanged:
    __version__ = 1

    venue_id = Identifier(required=True)
    accepting_orders = Boolean(required=True)
    changed_at = DateTime(required=True)


@delivery.event(part_of="Venue")
class VenueRatingRecalculated:
    __version__ = 1

    venue_id = Identifier(required=True)
    average_rating = Float(required=True)
    rating_count = Integer(required=True)
