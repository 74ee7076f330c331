"""Driver management: commands and handler.

Registration, approval/suspension, duty toggling and location pings.
"""

import structlog
from protean import handle
from protean.fields import Boolean, Float, Identifier, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.driver.driver import DEFAULT_MAX_DELIVERY_RADIUS_KM, Driver, DriverStatus

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Driver")
class RegisterDriver:
    name = String(required=True, max_length=200)
    latitude = Float()
    longitude = Float()
    max_delivery_radius_km = Float(default=DEFAULT_MAX_DELIVERY_RADIUS_KM)


@delivery.command(part_of="Driver")
class ChangeDriverStatus:
    driver_id = Identifier(required=True)
    status = String(required=True, choices=DriverStatus)


@delivery.command(part_of="Driver")
class SetDriverDutyStatus:
    driver_id = Identifier(required=True)
    on_duty = Boolean(required=True)


@delivery.command(part_of="Driver")
class UpdateDriverLocation:
    driver_id = Identifier(required=True)
    latitude = Float(required=True, min_value=-90.0, max_value=90.0)
    longitude = Float(required=True, min_value=-180.0, max_value=180.0)


@delivery.command_handler(part_of=Driver)
class DriverManagementHandler:
    @handle(RegisterDriver)
    def register_driver(self, command):
        driver = Driver.register(
            name=command.name,
            latitude=command.latitude,
            longitude=command.longitude,
            max_delivery_radius_km=command.max_delivery_radius_km,
        )
        current_domain.repository_for(Driver).add(driver)
        logger.info("Driver registered", driver_id=str(driver.id))
        return str(driver.id)

    @handle(ChangeDriverStatus)
    def change_status(self, command):
        repo = current_domain.repository_for(Driver)
        driver = repo.get(command.driver_id)
        driver.change_status(command.status)
        repo.add(driver)
        logger.info("Driver status changed", driver_id=str(driver.id), status=driver.status)

    @handle(SetDriverDutyStatus)
    def set_duty_status(self, command):
        repo = current_domain.repository_for(Driver)
        driver = repo.get(command.driver_id)
        driver.set_duty_status(command.on_duty)
        repo.add(driver)

    @handle(UpdateDriverLocation)
    def update_location(self, command):
        repo = current_domain.repository_for(Driver)
        driver = repo.get(command.driver_id)
        driver.update_location(command.latitude, command.longitude)
        repo.add(driver)
