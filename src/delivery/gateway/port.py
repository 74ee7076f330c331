"""Payment gateway port (abstract interface).

The delivery engine never talks to a card network. It asks the gateway for
a payment intent, later learns the outcome through a signed webhook, and
may ask for refunds. Adapters implement this contract; FakeGateway serves
development and tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentIntentResult:
    """Result of creating a payment intent."""

    success: bool
    reference: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundResult:
    success: bool
    refund_reference: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def create_payment_intent(
        self,
        amount: float,
        currency: str,
        payment_method: str,
        metadata: dict,
        idempotency_key: str,
    ) -> PaymentIntentResult:
        """Open a payment intent for an order."""
        ...

    @abstractmethod
    def create_refund(self, reference: str, amount: float, reason: str) -> RefundResult:
        """Refund all or part of a captured payment."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
