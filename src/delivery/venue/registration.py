"""Venue registration and configuration: commands and handler."""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.errors import Unauthorized
from delivery.venue.venue import Venue

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Venue")
class RegisterVenue:
    name = String(required=True, max_length=200)
    owner_id = Identifier(required=True)
    latitude = Float(required=True)
    longitude = Float(required=True)
    delivery_radius_km = Float(required=True)
    fee_schedule = Text(required=True)  # JSON


@delivery.command(part_of="Venue")
class UpdateVenueFeeSchedule:
    venue_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    fee_schedule = Text(required=True)  # JSON


@delivery.command(part_of="Venue")
class SetVenueAcceptingOrders:
    venue_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    accepting_orders = Boolean(required=True)


def _load_schedule(text: str) -> dict:
    try:
        return json.loads(text)
    except ValueError:
        raise ValidationError({"fee_schedule": ["Fee schedule must be valid JSON"]}) from None


def _owned_venue(repo, venue_id, actor_id) -> Venue:
    venue = repo.get(venue_id)
    if not venue.is_owned_by(actor_id):
        raise Unauthorized({"actor_id": ["Only the venue owner can change venue settings"]})
    return venue


@delivery.command_handler(part_of=Venue)
class VenueRegistrationHandler:
    @handle(RegisterVenue)
    def register_venue(self, command):
        venue = Venue.register(
            name=command.name,
            owner_id=command.owner_id,
            latitude=command.latitude,
            longitude=command.longitude,
            delivery_radius_km=command.delivery_radius_km,
            fee_schedule=_load_schedule(command.fee_schedule),
        )
        current_domain.repository_for(Venue).add(venue)
        logger.info("Venue registered", venue_id=str(venue.id), owner_id=str(command.owner_id))
        return str(venue.id)

    @handle(UpdateVenueFeeSchedule)
    def update_fee_schedule(self, command):
        repo = current_domain.repository_for(Venue)
        venue = _owned_venue(repo, command.venue_id, command.actor_id)
        venue.update_fee_schedule(_load_schedule(command.fee_schedule))
        repo.add(venue)

    @handle(SetVenueAcceptingOrders)
    def set_accepting_orders(self, command):
        repo = current_domain.repository_for(Venue)
        venue = _owned_venue(repo, command.venue_id, command.actor_id)
        venue.set_accepting_orders(command.accepting_orders)
        repo.add(venue)
