"""Driver location pings against an order: command and handler.

A ping adds a tracking entry under the order's current status and moves
the driver in the spatial index (through DriverLocationUpdated).
"""

from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.order.assignment import TouchedDrivers
from delivery.order.order import Order
from delivery.order.state_machine import Actor, ActorRole


@delivery.command(part_of="Order")
class RecordDriverLocation:
    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    latitude = Float(required=True)
    longitude = Float(required=True)
    notes = String(max_length=500)


@delivery.command_handler(part_of=Order)
class DriverLocationHandler:
    @handle(RecordDriverLocation)
    def record_location(self, command):
        repo = current_domain.repository_for(Order)
        drivers = TouchedDrivers()

        order = repo.get(command.order_id)
        actor = Actor(role=ActorRole.DRIVER, identity=str(command.driver_id))
        location = order.record_driver_location(actor, command.latitude, command.longitude, notes=command.notes)
        drivers.get(command.driver_id).update_location(location.latitude, location.longitude)

        repo.add(order)
        drivers.save()
