"""Order status updates: command and handler.

The state machine decides; the handler applies the decision to the Order
and carries out what it implies for the Driver:

- a driver self-accepting a ready order becomes busy with it
- a driver reporting a position moves in the spatial index
- delivery or failure frees the driver (delivery also counts as completed)
"""

import structlog
from protean import handle
from protean.fields import Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.order.assignment import TouchedDrivers
from delivery.order.order import Order
from delivery.order.state_machine import Actor, ActorRole, DeliveryStatus
from delivery.shared.geo import GeoPoint

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, choices=DeliveryStatus)
    actor_role = String(required=True, choices=ActorRole)
    actor_id = String(max_length=100)
    notes = String(max_length=500)
    latitude = Float()
    longitude = Float()
    expected_version = Integer()


def reported_location(command) -> GeoPoint | None:
    if command.latitude is None or command.longitude is None:
        return None
    return GeoPoint(latitude=command.latitude, longitude=command.longitude)


@delivery.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command):
        actor = Actor.of(command.actor_role, command.actor_id)
        location = reported_location(command)
        order_repo = current_domain.repository_for(Order)
        drivers = TouchedDrivers()

        order = order_repo.get(command.order_id)
        order.assert_version(command.expected_version)
        decision = order.authorize_transition(command.status, actor)

        if decision.claims_driver:
            drivers.get(actor.identity).take_order(str(order.id))

        order.apply_transition(decision, notes=command.notes, location=location)

        if location is not None and actor.role == ActorRole.DRIVER:
            drivers.get(actor.identity).update_location(location.latitude, location.longitude)
        if decision.ends_order:
            drivers.release_for(order, completed=decision.completes_delivery)

        order_repo.add(order)
        drivers.save()
        logger.info(
            "Order status changed",
            order_id=str(order.id),
            previous=decision.previous.value,
            status=decision.target.value,
            actor_role=actor.role.value,
            version=order.version,
        )
