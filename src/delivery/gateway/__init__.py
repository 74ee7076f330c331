"""Payment gateway factory.

Provides get_gateway() / set_gateway() / reset_gateway(). The adapter is
chosen by PAYMENT_GATEWAY_ADAPTER; only "fake" ships with the engine, real
gateways are registered with set_gateway() at startup.
"""

from delivery import settings
from delivery.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway. Defaults to FakeGateway."""
    global _current_gateway
    if _current_gateway is None:
        adapter = settings.payment_gateway_adapter()
        if adapter != "fake":
            raise ValueError(f"Unknown payment gateway adapter: {adapter}")
        from delivery.gateway.fake_adapter import FakeGateway

        _current_gateway = FakeGateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
