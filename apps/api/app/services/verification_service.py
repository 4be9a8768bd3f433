"""Two-stage pickup verification.

A preparer checks the temporary code the customer received at order time and
issues a final code that only reaches the customer out-of-band. A cashier then
checks that final code before handing the order over.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext
from app.errors import InvalidCodeError
from app.models.order import Order
from app.observability import log_event, metrics_store
from app.services.notification_service import FinalCodeNotice, build_final_code_notice
from app.services.orders_service import apply_transition, get_order
from app.services.pickup_codes import generate_final_code
from app.services.state_machine import OrderTrigger
from app.timeutils import utc_now


@dataclass
class CodeValidationResult:
    order: Order
    final_code: str
    notice: FinalCodeNotice


def _reject_code(order: Order, actor: AuthContext, stage: str) -> None:
    metrics_store.increment("pickup_invalid_code_total")
    metrics_store.increment(f"pickup_invalid_{stage}_code_total")
    log_event(
        "pickup_invalid_code",
        level=logging.WARNING,
        order_id=str(order.id),
        staff_id=actor.user_id,
        detail=stage,
    )


def validate_temporary_code(
    db: Session,
    order_id: str,
    temporary_code: str,
    actor: AuthContext,
) -> CodeValidationResult:
    order = get_order(db, order_id)
    if order.temp_pickup_code != temporary_code:
        _reject_code(order, actor, "temporary")
        raise InvalidCodeError("Code temporaire invalide")

    final_code = generate_final_code()
    order = apply_transition(
        db,
        order,
        OrderTrigger.TEMP_CODE_VALIDATED,
        actor,
        action="validated_code",
        details="Code temporaire validé, code final émis",
        values={"final_pickup_code": final_code, "code_validated_at": utc_now()},
    )
    return CodeValidationResult(
        order=order,
        final_code=final_code,
        notice=build_final_code_notice(order),
    )


def verify_final_code(
    db: Session,
    order_id: str,
    final_code: str,
    actor: AuthContext,
) -> Order:
    order = get_order(db, order_id)
    if not order.final_pickup_code or order.final_pickup_code != final_code:
        _reject_code(order, actor, "final")
        raise InvalidCodeError("Code final invalide")

    return apply_transition(
        db,
        order,
        OrderTrigger.PICKUP_COMPLETED,
        actor,
        action="completed_order",
        details="Retrait validé",
        values={"picked_up_at": utc_now()},
    )
