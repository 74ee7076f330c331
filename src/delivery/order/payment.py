"""Order payment: initiation, gateway webhooks and refunds.

Payment status gates the delivery state machine: nothing but FAILED is
reachable until the order is paid. The gateway answers a new intent with a
reference; the outcome arrives later through a signed webhook:

    payment_intent.succeeded       → paid, then PENDING → PREPARING
    payment_intent.payment_failed  → failed, then → FAILED
    charge.refunded                → refunded / partially refunded, then → FAILED

Webhooks may be delivered more than once; a repeat changes nothing.
"""

from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.errors import Unauthorized
from delivery.external import call_with_timeout
from delivery.gateway import get_gateway
from delivery.order.assignment import TouchedDrivers
from delivery.order.order import Order, PaymentMethod
from delivery.order.state_machine import Actor, ActorRole, DeliveryStatus, PaymentStatus

logger = structlog.get_logger(__name__)


class WebhookEvent(Enum):
    PAYMENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_FAILED = "payment_intent.payment_failed"
    CHARGE_REFUNDED = "charge.refunded"


@delivery.command(part_of="Order")
class PayOrder:
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.0)
    payment_method = String(required=True, choices=PaymentMethod)


@delivery.command(part_of="Order")
class ProcessPaymentWebhook:
    order_id = Identifier(required=True)
    event_type = String(required=True, max_length=100)
    payment_reference = String(max_length=255)
    amount = Float()
    failure_reason = String(max_length=500)


@delivery.command(part_of="Order")
class RefundOrder:
    order_id = Identifier(required=True)
    actor_role = String(required=True, choices=ActorRole)
    actor_id = String(max_length=100)
    amount = Float()
    reason = String(required=True, max_length=500)


def _fail_order(order: Order, actor: Actor, notes: str, drivers: TouchedDrivers) -> None:
    if order.is_terminal:
        return
    order.transition(DeliveryStatus.FAILED.value, actor, notes=notes)
    drivers.release_for(order, completed=False)


@delivery.command_handler(part_of=Order)
class OrderPaymentHandler:
    @handle(PayOrder)
    def pay_order(self, command):
        repo = current_domain.repository_for(Order)
        drivers = TouchedDrivers()
        order = repo.get(command.order_id)
        order.assert_payable(command.customer_id, command.amount)

        result = call_with_timeout(
            "payment_gateway",
            get_gateway().create_payment_intent,
            amount=order.total_amount,
            currency=order.fee.currency if order.fee else "USD",
            payment_method=command.payment_method,
            metadata={"order_id": str(order.id), "customer_id": str(order.customer_id)},
            idempotency_key=f"order-{order.id}-v{order.version}",
        )

        if result.success:
            order.attach_payment(command.amount, command.payment_method, result.reference)
            logger.info("Payment initiated", order_id=str(order.id), reference=result.reference)
        else:
            reason = result.failure_reason or "Payment declined"
            order.mark_payment_failed(reason)
            _fail_order(order, Actor.system(), f"Payment declined: {reason}", drivers)
            logger.warning("Payment declined", order_id=str(order.id), reason=reason)

        repo.add(order)
        drivers.save()
        return result.reference

    @handle(ProcessPaymentWebhook)
    def process_webhook(self, command):
        repo = current_domain.repository_for(Order)
        drivers = TouchedDrivers()
        order = repo.get(command.order_id)
        system = Actor.system()

        try:
            event = WebhookEvent(command.event_type)
        except ValueError:
            logger.warning("Ignoring unknown webhook event", order_id=str(order.id), event_type=command.event_type)
            return False

        changed = False
        if event == WebhookEvent.PAYMENT_SUCCEEDED:
            changed = order.mark_paid(command.payment_reference)
            if changed and order.status == DeliveryStatus.PENDING:
                order.transition(DeliveryStatus.PREPARING.value, system, notes="Payment confirmed")
        elif event == WebhookEvent.PAYMENT_FAILED:
            reason = command.failure_reason or "Payment failed"
            changed = order.mark_payment_failed(reason)
            if changed:
                _fail_order(order, system, reason, drivers)
        elif event == WebhookEvent.CHARGE_REFUNDED:
            if PaymentStatus(order.payment_status) in (PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED):
                order.mark_refunded(command.amount)
                _fail_order(order, system, "Payment refunded", drivers)
                changed = True

        if not changed:
            logger.info("Duplicate or stale webhook ignored", order_id=str(order.id), event_type=event.value)
            return False

        repo.add(order)
        drivers.save()
        logger.info(
            "Webhook processed",
            order_id=str(order.id),
            event_type=event.value,
            payment_status=order.payment_status,
            delivery_status=order.delivery_status,
        )
        return True

    @handle(RefundOrder)
    def refund_order(self, command):
        actor = Actor.of(command.actor_role, command.actor_id)
        repo = current_domain.repository_for(Order)
        drivers = TouchedDrivers()
        order = repo.get(command.order_id)

        is_owner = actor.role == ActorRole.VENUE and actor.identity == str(order.venue_owner_id)
        if actor.role != ActorRole.SYSTEM and not is_owner:
            raise Unauthorized({"actor_id": ["Only the venue owner can refund an order"]})
        if not order.payment_reference:
            raise ValidationError({"payment_reference": ["Order has no captured payment to refund"]})

        amount = order.refundable_amount(command.amount)
        result = call_with_timeout(
            "payment_gateway",
            get_gateway().create_refund,
            reference=order.payment_reference,
            amount=amount,
            reason=command.reason,
        )
        if not result.success:
            raise ValidationError({"refund": [result.failure_reason or "Refund declined by the gateway"]})

        is_full = order.mark_refunded(amount)
        _fail_order(order, actor, f"Refunded: {command.reason}", drivers)

        repo.add(order)
        drivers.save()
        logger.info("Order refunded", order_id=str(order.id), amount=amount, full=is_full)
        return result.refund_reference
