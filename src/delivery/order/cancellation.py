"""Order cancellation: command and handler.

Cancelling is a move to FAILED through the state machine, so the same role
rules apply and no payment is required. The order must still be
cancellable: not deleted, not finished and not already cancelled.
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.order.assignment import TouchedDrivers
from delivery.order.order import Order
from delivery.order.state_machine import Actor, ActorRole

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    actor_role = String(required=True, choices=ActorRole)
    actor_id = String(max_length=100)
    reason = String(required=True, max_length=500)
    expected_version = Integer()


@delivery.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        actor = Actor.of(command.actor_role, command.actor_id)
        repo = current_domain.repository_for(Order)
        drivers = TouchedDrivers()

        order = repo.get(command.order_id)
        order.cancel(actor, command.reason, expected_version=command.expected_version)
        drivers.release_for(order, completed=False)

        repo.add(order)
        drivers.save()
        logger.info("Order cancelled", order_id=str(order.id), cancelled_by=actor.role.value, reason=command.reason)
