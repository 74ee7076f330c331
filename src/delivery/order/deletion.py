"""Order soft delete: command and handler.

Finished orders are hidden from listings and statistics but kept for audit.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.order.order import Order
from delivery.order.state_machine import Actor, ActorRole

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class DeleteOrder:
    order_id = Identifier(required=True)
    actor_role = String(required=True, choices=ActorRole)
    actor_id = String(max_length=100)


@delivery.command_handler(part_of=Order)
class DeleteOrderHandler:
    @handle(DeleteOrder)
    def delete_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.soft_delete(Actor.of(command.actor_role, command.actor_id))
        repo.add(order)
        logger.info("Order deleted", order_id=str(order.id), deleted_by=command.actor_role)
