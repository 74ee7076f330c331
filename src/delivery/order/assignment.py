"""Driver dispatch: command, handler and the driver side effects shared by
the other order handlers.

The Order and Driver changes are saved in one unit of work while both
records are locked, so a driver can be busy with at most one order.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.driver.driver import Driver
from delivery.order.order import Order
from delivery.order.state_machine import Actor, ActorRole

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class AssignDriver:
    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    actor_role = String(required=True, choices=ActorRole)
    actor_id = String(max_length=100)


class TouchedDrivers:
    """Drivers changed by one order command, each loaded once and saved together."""

    def __init__(self) -> None:
        self._repo = current_domain.repository_for(Driver)
        self._drivers: dict[str, Driver] = {}

    def get(self, driver_id) -> Driver:
        key = str(driver_id)
        if key not in self._drivers:
            self._drivers[key] = self._repo.get(key)
        return self._drivers[key]

    def release_for(self, order: Order, completed: bool) -> None:
        """Free the order's driver once the order ended."""
        if not order.driver_id:
            return
        driver = self.get(order.driver_id)
        if driver.current_order_id and str(driver.current_order_id) != str(order.id):
            logger.warning(
                "Driver moved on before order ended",
                order_id=str(order.id),
                driver_id=str(driver.id),
                current_order_id=str(driver.current_order_id),
            )
            return
        driver.release(str(order.id), completed=completed)

    def save(self) -> None:
        for driver in self._drivers.values():
            self._repo.add(driver)


@delivery.command_handler(part_of=Order)
class DriverAssignmentHandler:
    @handle(AssignDriver)
    def assign_driver(self, command):
        actor = Actor.of(command.actor_role, command.actor_id)
        order_repo = current_domain.repository_for(Order)
        drivers = TouchedDrivers()

        order = order_repo.get(command.order_id)
        order.assign_driver(str(command.driver_id), actor)
        driver = drivers.get(command.driver_id)
        driver.take_order(str(order.id))

        order_repo.add(order)
        drivers.save()
        logger.info("Driver assigned", order_id=str(order.id), driver_id=str(driver.id), by=actor.role.value)
