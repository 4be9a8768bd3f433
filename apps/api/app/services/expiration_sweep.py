from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.auth.dependencies import SYSTEM_ACTOR
from app.errors import IllegalTransitionError
from app.models.order import Order
from app.observability import log_event, metrics_store
from app.services.expiration_policy import EXPIRABLE_STATUSES
from app.services.orders_service import apply_transition
from app.services.state_machine import OrderTrigger
from app.timeutils import utc_now


def find_overdue_orders(db: Session, now: datetime) -> list[Order]:
    return list(
        db.scalars(
            select(Order)
            .where(Order.expires_at < now, Order.status.in_(list(EXPIRABLE_STATUSES)))
            .order_by(Order.expires_at.asc())
        )
    )


def expire_overdue_orders(db: Session, now: datetime | None = None) -> list[Order]:
    """Cancel every overdue order still awaiting payment or pickup preparation.

    Orders that move on concurrently (paid, completed) are skipped.
    """
    now = now or utc_now()
    expired: list[Order] = []
    for order in find_overdue_orders(db, now):
        try:
            apply_transition(
                db,
                order,
                OrderTrigger.EXPIRED,
                SYSTEM_ACTOR,
                action="expired",
                details=f"Délai de retrait dépassé ({order.expires_at.isoformat()})",
            )
        except IllegalTransitionError:
            log_event("order_expiry_skipped", order_id=str(order.id), detail=order.status.value)
            continue
        expired.append(order)

    if expired:
        metrics_store.increment("orders_expired_total", len(expired))
    log_event("expiration_sweep_completed", detail=f"expired={len(expired)}")
    return expired
