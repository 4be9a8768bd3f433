import enum
from dataclasses import dataclass

from app.errors import ForbiddenRoleError, IllegalTransitionError
from app.models.order import OrderStatus


class OrderTrigger(str, enum.Enum):
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    TEMP_CODE_VALIDATED = "temp_code_validated"
    PREPARATION_STARTED = "preparation_started"
    MARKED_READY = "marked_ready"
    PICKUP_COMPLETED = "pickup_completed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Transition:
    sources: frozenset[OrderStatus]
    target: OrderStatus
    # None means the trigger is fired by the system (webhook, expiration sweep)
    roles: frozenset[str] | None = None


TRANSITIONS: dict[OrderTrigger, Transition] = {
    OrderTrigger.PAYMENT_SUCCEEDED: Transition(
        sources=frozenset({OrderStatus.PENDING_PAYMENT}),
        target=OrderStatus.PAID,
    ),
    OrderTrigger.PAYMENT_FAILED: Transition(
        sources=frozenset({OrderStatus.PENDING_PAYMENT}),
        target=OrderStatus.CANCELED,
    ),
    OrderTrigger.TEMP_CODE_VALIDATED: Transition(
        sources=frozenset({OrderStatus.PAID}),
        target=OrderStatus.CONFIRMED,
        roles=frozenset({"PREPARER", "ADMIN"}),
    ),
    OrderTrigger.PREPARATION_STARTED: Transition(
        sources=frozenset({OrderStatus.CONFIRMED}),
        target=OrderStatus.IN_PREPARATION,
        roles=frozenset({"PREPARER", "ADMIN"}),
    ),
    OrderTrigger.MARKED_READY: Transition(
        sources=frozenset({OrderStatus.IN_PREPARATION}),
        target=OrderStatus.READY,
        roles=frozenset({"PREPARER", "ADMIN"}),
    ),
    OrderTrigger.PICKUP_COMPLETED: Transition(
        sources=frozenset({OrderStatus.READY, OrderStatus.CONFIRMED}),
        target=OrderStatus.COMPLETED,
        roles=frozenset({"CASHIER", "ADMIN"}),
    ),
    OrderTrigger.EXPIRED: Transition(
        sources=frozenset(
            {OrderStatus.PENDING_PAYMENT, OrderStatus.CONFIRMED, OrderStatus.IN_PREPARATION}
        ),
        target=OrderStatus.CANCELED,
    ),
}


def resolve_transition(
    current: OrderStatus,
    trigger: OrderTrigger,
    role: str | None = None,
) -> Transition:
    """Return the transition for ``trigger`` or raise when it is not allowed.

    Staff triggers carry a role guard; system triggers are called without a role.
    """
    transition = TRANSITIONS[trigger]
    if transition.roles is not None and role not in transition.roles:
        raise ForbiddenRoleError(f"Role {role} cannot perform {trigger.value}")
    if current not in transition.sources:
        raise IllegalTransitionError(current=current.value, trigger=trigger.value)
    return transition
