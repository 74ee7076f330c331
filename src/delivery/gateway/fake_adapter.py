"""Configurable fake payment gateway for development and testing.

Simulates intents and refunds without external calls. Toggle outcomes at
runtime through configure() or the /payments/gateway/configure endpoint.
Webhooks are accepted when signed with the fixed test signature.
"""

from uuid import uuid4

from delivery.gateway.port import PaymentGateway, PaymentIntentResult, RefundResult

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_payment_intent(
        self,
        amount: float,
        currency: str,
        payment_method: str,
        metadata: dict,
        idempotency_key: str,
    ) -> PaymentIntentResult:
        self.calls.append(
            {
                "method": "create_payment_intent",
                "amount": amount,
                "currency": currency,
                "payment_method": payment_method,
                "metadata": metadata,
                "idempotency_key": idempotency_key,
            }
        )
        if self.should_succeed:
            return PaymentIntentResult(
                success=True,
                reference=f"pi_fake_{uuid4().hex[:12]}",
                gateway_status="requires_confirmation",
            )
        return PaymentIntentResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)

    def create_refund(self, reference: str, amount: float, reason: str) -> RefundResult:
        self.calls.append({"method": "create_refund", "reference": reference, "amount": amount, "reason": reason})
        if self.should_succeed:
            return RefundResult(
                success=True,
                refund_reference=f"re_fake_{uuid4().hex[:12]}",
                gateway_status="succeeded",
            )
        return RefundResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == TEST_SIGNATURE
