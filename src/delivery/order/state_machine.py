"""Order delivery state machine.

A pure decision function over two tables:

    _VALID_TRANSITIONS   status → statuses it may move to (actor-independent)
    _EDGE_PERMISSIONS    role → (from, to) edges that role may request

plus a binding of each role to the party on the order it must be (the
venue's owner, the assigned driver, the order's customer). Adding a role
or a status means editing these tables, not the algorithm.

State Machine:
    PENDING → PREPARING → READY → DISPATCHED → IN_TRANSIT → DELIVERED
    {PENDING, PREPARING, READY, DISPATCHED, IN_TRANSIT} → FAILED

decide() checks, in order: the edge exists (InvalidTransition), the actor
may request it (Unauthorized), the order is paid unless the target is
FAILED (PaymentRequired). It never touches the order; the aggregate applies
the returned decision.
"""

from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ValidationError

from delivery.errors import InvalidTransition, PaymentRequired, Unauthorized


class DeliveryStatus(Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    DISPATCHED = "dispatched"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class ActorRole(Enum):
    CUSTOMER = "customer"
    VENUE = "venue"
    DRIVER = "driver"
    SYSTEM = "system"


_VALID_TRANSITIONS = {
    DeliveryStatus.PENDING: {DeliveryStatus.PREPARING, DeliveryStatus.FAILED},
    DeliveryStatus.PREPARING: {DeliveryStatus.READY, DeliveryStatus.FAILED},
    DeliveryStatus.READY: {DeliveryStatus.DISPATCHED, DeliveryStatus.FAILED},
    DeliveryStatus.DISPATCHED: {DeliveryStatus.IN_TRANSIT, DeliveryStatus.FAILED},
    DeliveryStatus.IN_TRANSIT: {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED},
    DeliveryStatus.DELIVERED: set(),  # terminal
    DeliveryStatus.FAILED: set(),  # terminal
}

TERMINAL_STATUSES = frozenset(s for s, targets in _VALID_TRANSITIONS.items() if not targets)

# Statuses in which an order is carrying a driver
DRIVER_HELD_STATUSES = frozenset({DeliveryStatus.DISPATCHED, DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED})

ANY = "*"

_EDGE_PERMISSIONS = {
    ActorRole.VENUE: {
        (DeliveryStatus.PENDING, DeliveryStatus.PREPARING),
        (DeliveryStatus.PREPARING, DeliveryStatus.READY),
        (ANY, DeliveryStatus.FAILED),
    },
    ActorRole.DRIVER: {
        (DeliveryStatus.READY, DeliveryStatus.DISPATCHED),
        (DeliveryStatus.DISPATCHED, DeliveryStatus.IN_TRANSIT),
        (DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED),
        (ANY, DeliveryStatus.FAILED),
    },
    ActorRole.CUSTOMER: {
        (ANY, DeliveryStatus.FAILED),
    },
    ActorRole.SYSTEM: {
        (DeliveryStatus.PENDING, DeliveryStatus.PREPARING),
        (ANY, DeliveryStatus.FAILED),
    },
}

# Which party on the order the actor's identity must match
_IDENTITY_BINDING = {
    ActorRole.VENUE: "venue_owner_id",
    ActorRole.DRIVER: "driver_id",
    ActorRole.CUSTOMER: "customer_id",
    ActorRole.SYSTEM: None,
}

# Edges a driver may request on an order no driver holds yet (self-accept)
_SELF_ASSIGNABLE_EDGES = {(DeliveryStatus.READY, DeliveryStatus.DISPATCHED)}

# Roles that may only act while the order is still cancellable
_CANCELLABLE_ONLY_ROLES = {ActorRole.CUSTOMER}


@dataclass(frozen=True)
class Actor:
    """Who is asking: a role plus the caller's identity within that role."""

    role: ActorRole
    identity: str | None = None

    @classmethod
    def of(cls, role: str, identity=None) -> "Actor":
        try:
            actor_role = ActorRole(role)
        except ValueError:
            raise ValidationError({"actor_role": [f"Unknown actor role: {role}"]}) from None
        if actor_role != ActorRole.SYSTEM and not identity:
            raise Unauthorized({"actor_id": [f"A {actor_role.value} actor must identify itself"]})
        return cls(role=actor_role, identity=str(identity) if identity else None)

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=ActorRole.SYSTEM, identity="system")


@dataclass(frozen=True)
class OrderFacts:
    """The slice of an order the state machine looks at."""

    delivery_status: DeliveryStatus
    payment_status: PaymentStatus
    customer_id: str
    venue_owner_id: str | None = None
    driver_id: str | None = None
    is_cancellable: bool = True


@dataclass(frozen=True)
class TransitionDecision:
    previous: DeliveryStatus
    target: DeliveryStatus
    actor: Actor
    claims_driver: bool = False

    @property
    def completes_delivery(self) -> bool:
        return self.target == DeliveryStatus.DELIVERED

    @property
    def ends_order(self) -> bool:
        return self.target in TERMINAL_STATUSES


def allowed_next(status: DeliveryStatus) -> frozenset:
    return frozenset(_VALID_TRANSITIONS.get(status, set()))


def role_may_request(role: ActorRole, current: DeliveryStatus, target: DeliveryStatus) -> bool:
    edges = _EDGE_PERMISSIONS.get(role, set())
    return (current, target) in edges or (ANY, target) in edges


def _is_bound_party(order: OrderFacts, actor: Actor) -> bool:
    attribute = _IDENTITY_BINDING[actor.role]
    if attribute is None:
        return True
    expected = getattr(order, attribute)
    return expected is not None and actor.identity is not None and str(expected) == str(actor.identity)


def decide(order: OrderFacts, requested: DeliveryStatus, actor: Actor) -> TransitionDecision:
    current = order.delivery_status

    if requested not in _VALID_TRANSITIONS[current]:
        raise InvalidTransition(
            {"delivery_status": [f"Cannot transition from {current.value} to {requested.value}"]}
        )

    if not role_may_request(actor.role, current, requested):
        raise Unauthorized(
            {"actor_role": [f"A {actor.role.value} cannot move an order from {current.value} to {requested.value}"]}
        )

    claims_driver = (
        actor.role == ActorRole.DRIVER and order.driver_id is None and (current, requested) in _SELF_ASSIGNABLE_EDGES
    )
    if not claims_driver and not _is_bound_party(order, actor):
        raise Unauthorized({"actor_id": [f"This {actor.role.value} is not a party to the order"]})

    if actor.role in _CANCELLABLE_ONLY_ROLES and not order.is_cancellable:
        raise Unauthorized({"delivery_status": ["The order can no longer be cancelled"]})

    if requested != DeliveryStatus.FAILED and order.payment_status != PaymentStatus.PAID:
        raise PaymentRequired({"payment_status": [f"Order must be paid before moving to {requested.value}"]})

    return TransitionDecision(previous=current, target=requested, actor=actor, claims_driver=claims_driver)
