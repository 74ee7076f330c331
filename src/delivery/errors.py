"""Error taxonomy of the delivery domain.

Business rule violations subclass Protean's ValidationError and carry a
``{field: [messages]}`` dict, so anything that already handles
ValidationError keeps working. ConcurrentModification and
ServiceUnavailable are infrastructure failures and are safe to retry.

Missing records surface as Protean's ObjectNotFoundError.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError

NotFound = ObjectNotFoundError


class InvalidTransition(ValidationError):
    """The requested status is not a legal next state."""


class Unauthorized(ValidationError):
    """The actor may not perform this action on this record."""


class PaymentRequired(ValidationError):
    """The order must be paid before it can progress."""


class OutOfDeliveryRange(ValidationError):
    """The drop-off point lies outside the venue's delivery radius."""


class DriverUnavailable(ValidationError):
    """The driver is busy, off duty or not active."""


class OrderNotReady(ValidationError):
    """Drivers can only be assigned to orders that are ready."""


class NotCancellable(ValidationError):
    pass


class NotDelivered(ValidationError):
    pass


class AlreadyRated(ValidationError):
    pass


class VenueUnavailable(ValidationError):
    """The venue is not accepting orders."""


class InvalidItems(ValidationError):
    pass


class ConcurrentModification(Exception):
    """Another request holds or has changed the same record."""

    def __init__(self, key: str, detail: str | None = None) -> None:
        self.key = key
        self.detail = detail or f"{key} is being modified by another request"
        super().__init__(self.detail)


class ServiceUnavailable(Exception):
    """An external collaborator failed or did not answer in time."""

    def __init__(self, service: str, detail: str) -> None:
        self.service = service
        self.detail = detail
        super().__init__(f"{service}: {detail}")
