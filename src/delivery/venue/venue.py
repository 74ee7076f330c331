"""Venue aggregate: a food outlet that receives delivery orders.

Only the parts the order engine needs live here: where the venue is, how
far it delivers, how it prices delivery, whether it is taking orders, and
its running rating. Business onboarding is handled elsewhere.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text, ValueObject

from delivery.domain import delivery
from delivery.errors import VenueUnavailable
from delivery.pricing.fees import FeeSchedule, validate_fee_schedule
from delivery.shared.geo import GeoPoint
from delivery.venue.events import (
    VenueAvailabilityChanged,
    VenueFeeScheduleUpdated,
    VenueRatingRecalculated,
    VenueRegistered,
)


def _parse_fee_schedule(fee_schedule: dict) -> FeeSchedule:
    schedule = FeeSchedule.from_dict(fee_schedule)
    validate_fee_schedule(schedule)
    return schedule


@delivery.aggregate
class Venue:
    name = String(required=True, max_length=200)
    owner_id = Identifier(required=True)
    location = ValueObject(GeoPoint, required=True)
    delivery_radius_km = Float(required=True, min_value=0.1)
    accepting_orders = Boolean(default=True)
    fee_schedule = Text(required=True)  # JSON, see FeeSchedule.to_dict()
    average_rating = Float(default=0.0)
    rating_count = Integer(default=0)
    total_orders = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(
        cls,
        name: str,
        owner_id: str,
        latitude: float,
        longitude: float,
        delivery_radius_km: float,
        fee_schedule: dict,
    ):
        schedule = _parse_fee_schedule(fee_schedule)
        now = datetime.now(UTC)
        venue = cls(
            name=name,
            owner_id=owner_id,
            location=GeoPoint(latitude=latitude, longitude=longitude),
            delivery_radius_km=delivery_radius_km,
            fee_schedule=json.dumps(schedule.to_dict()),
            created_at=now,
            updated_at=now,
        )
        venue.raise_(
            VenueRegistered(
                venue_id=str(venue.id),
                owner_id=owner_id,
                name=name,
                latitude=latitude,
                longitude=longitude,
                delivery_radius_km=delivery_radius_km,
                registered_at=now,
            )
        )
        return venue

    def fee_schedule_config(self) -> FeeSchedule:
        return FeeSchedule.from_dict(json.loads(self.fee_schedule))

    def is_owned_by(self, actor_id) -> bool:
        return actor_id is not None and str(actor_id) == str(self.owner_id)

    def update_fee_schedule(self, fee_schedule: dict) -> None:
        schedule = _parse_fee_schedule(fee_schedule)
        now = datetime.now(UTC)
        self.fee_schedule = json.dumps(schedule.to_dict())
        self.updated_at = now
        self.raise_(VenueFeeScheduleUpdated(venue_id=str(self.id), fee_schedule=self.fee_schedule, updated_at=now))

    def set_accepting_orders(self, accepting: bool) -> None:
        if self.accepting_orders == accepting:
            return
        now = datetime.now(UTC)
        self.accepting_orders = accepting
        self.updated_at = now
        self.raise_(VenueAvailabilityChanged(venue_id=str(self.id), accepting_orders=accepting, changed_at=now))

    def assert_accepting_orders(self) -> None:
        if not self.accepting_orders:
            raise VenueUnavailable({"venue_id": [f"Venue {self.name} is not accepting orders"]})

    def record_order_placed(self) -> None:
        self.total_orders = (self.total_orders or 0) + 1
        self.updated_at = datetime.now(UTC)

    def update_rating(self, average: float, count: int) -> None:
        if count < 0:
            raise ValidationError({"rating_count": ["Rating count cannot be negative"]})
        self.average_rating = average
        self.rating_count = count
        self.updated_at = datetime.now(UTC)
        self.raise_(VenueRatingRecalculated(venue_id=str(self.id), average_rating=average, rating_count=count))
