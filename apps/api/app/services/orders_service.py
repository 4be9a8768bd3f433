import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext
from app.config import settings
from app.errors import IllegalTransitionError, NotFoundError, ValidationError
from app.models.activity_log import ActivityLogEntry
from app.models.order import Order, OrderItem, OrderStatus
from app.models.product import Product
from app.observability import log_event, metrics_store
from app.schemas.order import OrderCreate
from app.services.activity_service import append_activity
from app.services.catalog_service import (
    get_pickup_slot_by_id,
    get_product_by_id,
    release_slot,
    release_stock,
    reserve_slot,
    reserve_stock,
)
from app.services.expiration_policy import compute_deadline, validate_slot
from app.services.pickup_codes import generate_order_number, generate_unique_temp_code
from app.services.state_machine import OrderTrigger, resolve_transition
from app.timeutils import utc_now

_CENT = Decimal("0.01")

_PREPARATION_TRIGGERS = {
    OrderStatus.IN_PREPARATION: (OrderTrigger.PREPARATION_STARTED, "preparation_started"),
    OrderStatus.READY: (OrderTrigger.MARKED_READY, "marked_ready"),
}

STAFF_WORK_ACTIONS = ("validated_code", "preparation_started", "marked_ready", "completed_order")


def _order_lines(
    db: Session, payload: OrderCreate
) -> tuple[list[OrderItem], dict[uuid.UUID, tuple[Product, int]]]:
    lines: list[OrderItem] = []
    reservations: dict[uuid.UUID, tuple[Product, int]] = {}

    for position, item in enumerate(payload.items):
        product = get_product_by_id(db, item.product_id)
        if not product.is_active:
            raise ValidationError(f"Product {product.name} is not available")

        _, reserved = reservations.get(product.id, (product, 0))
        reservations[product.id] = (product, reserved + item.quantity)

        unit_price = Decimal(product.price).quantize(_CENT)
        lines.append(
            OrderItem(
                position=position,
                product_id=product.id,
                product_name=product.name,
                unit_price=unit_price,
                quantity=item.quantity,
                subtotal=(unit_price * item.quantity).quantize(_CENT),
                is_perishable=product.is_perishable,
            )
        )

    for product, quantity in reservations.values():
        if product.stock < quantity:
            raise ValidationError(f"Insufficient stock for {product.name}")

    return lines, reservations


def create_order(db: Session, payload: OrderCreate, auth: AuthContext | None = None) -> Order:
    slot = get_pickup_slot_by_id(db, payload.pickup_slot_id)
    lines, reservations = _order_lines(db, payload)

    created_at = utc_now()
    expires_at = compute_deadline(lines, created_at)
    validate_slot(slot, expires_at)

    try:
        for product, quantity in reservations.values():
            reserve_stock(db, product, quantity)
        reserve_slot(db, slot)

        order = Order(
            order_number=generate_order_number(created_at),
            user_id=auth.user_id if auth and auth.role == "CUSTOMER" else None,
            customer_name=payload.customer_name,
            customer_phone=payload.customer_phone,
            customer_email=payload.customer_email,
            total_amount=sum((line.subtotal for line in lines), Decimal("0.00")),
            currency=settings.currency,
            payment_method=payload.payment_method,
            notes=payload.notes,
            pickup_slot_id=slot.id,
            status=OrderStatus.PENDING_PAYMENT,
            temp_pickup_code=generate_unique_temp_code(db),
            created_at=created_at,
            updated_at=created_at,
            expires_at=expires_at,
            items=lines,
        )
        db.add(order)
        db.flush()

        actor = auth or AuthContext(user_id="anonymous", role="CUSTOMER")
        append_activity(
            db,
            AuthContext(user_id=actor.user_id, role=actor.role, name=payload.customer_name),
            "order_created",
            str(order.id),
            f"Commande {order.order_number}",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    metrics_store.increment("orders_created_total")
    log_event("order_created", order_id=str(order.id))
    return order


def _parse_order_id(order_id: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(order_id, uuid.UUID):
        return order_id
    try:
        return uuid.UUID(str(order_id))
    except ValueError:
        return None


def get_order(db: Session, order_id: str | uuid.UUID) -> Order:
    parsed = _parse_order_id(order_id)
    order = db.get(Order, parsed) if parsed else None
    if not order:
        raise NotFoundError("Order not found")
    return order


def get_order_by_reference(db: Session, reference: str) -> Order:
    """Resolve a provider reference, which is either the order id or its number."""
    parsed = _parse_order_id(reference)
    if parsed:
        order = db.get(Order, parsed)
    else:
        order = db.scalar(select(Order).where(Order.order_number == reference))
    if not order:
        raise NotFoundError("Order not found")
    return order


def list_orders(
    db: Session,
    status_filter: OrderStatus | None = None,
    user_id: str | None = None,
    handled_by: str | None = None,
) -> list[Order]:
    query = select(Order)
    if handled_by:
        handled = handled_order_ids(db, handled_by)
        if not handled:
            return []
        query = query.where(Order.id.in_(handled))
    if status_filter:
        query = query.where(Order.status == status_filter)
    if user_id:
        query = query.where(Order.user_id == user_id)
    return list(db.scalars(query.order_by(Order.created_at.desc())))


def handled_order_ids(db: Session, staff_id: str) -> set[uuid.UUID]:
    """Orders the staff member has acted on since payment."""
    entity_ids = db.scalars(
        select(ActivityLogEntry.entity_id)
        .where(
            ActivityLogEntry.staff_id == staff_id,
            ActivityLogEntry.entity_type == "order",
            ActivityLogEntry.action.in_(STAFF_WORK_ACTIONS),
        )
        .distinct()
    )
    return {parsed for parsed in map(_parse_order_id, entity_ids) if parsed}


def order_status_counts(db: Session) -> dict[OrderStatus, int]:
    rows = db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))
    counts = {status: 0 for status in OrderStatus}
    counts.update({status: count for status, count in rows})
    return counts


def dashboard_kpis(db: Session) -> dict[str, object]:
    counts = order_status_counts(db)
    return {
        "total_orders": sum(counts.values()),
        "pending_orders": counts[OrderStatus.PENDING_PAYMENT] + counts[OrderStatus.PAID],
        "in_preparation_orders": (
            counts[OrderStatus.CONFIRMED] + counts[OrderStatus.IN_PREPARATION]
        ),
        "ready_orders": counts[OrderStatus.READY],
        "completed_orders": counts[OrderStatus.COMPLETED],
        "canceled_orders": counts[OrderStatus.CANCELED],
        "by_status": counts,
    }


def _release_reservations(db: Session, order: Order) -> None:
    for item in order.items:
        release_stock(db, item.product_id, item.quantity)
    release_slot(db, order.pickup_slot_id)


def apply_transition(
    db: Session,
    order: Order,
    trigger: OrderTrigger,
    actor: AuthContext,
    *,
    action: str,
    details: str | None = None,
    values: dict[str, Any] | None = None,
) -> Order:
    """Move ``order`` through ``trigger`` with a conditional update on its stored status.

    Losing a race to a concurrent writer leaves the row untouched and raises
    ``IllegalTransitionError`` carrying the status that won.
    """
    transition = resolve_transition(order.status, trigger, actor.role)
    now = utc_now()

    try:
        result = db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status.in_(list(transition.sources)))
            .values(status=transition.target, updated_at=now, **(values or {}))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            db.refresh(order)
            raise IllegalTransitionError(current=order.status.value, trigger=trigger.value)

        if transition.target == OrderStatus.CANCELED:
            _release_reservations(db, order)
        append_activity(db, actor, action, str(order.id), details)
        db.commit()
    except IllegalTransitionError:
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    log_event(
        f"order_{trigger.value}",
        order_id=str(order.id),
        staff_id=actor.user_id,
        detail=f"-> {transition.target.value}",
    )
    return order


def update_preparation_status(
    db: Session,
    order_id: str,
    status: OrderStatus,
    actor: AuthContext,
    notes: str | None = None,
) -> Order:
    if status not in _PREPARATION_TRIGGERS:
        raise ValidationError(f"Unsupported preparation status: {status.value}")

    order = get_order(db, order_id)
    trigger, action = _PREPARATION_TRIGGERS[status]
    return apply_transition(db, order, trigger, actor, action=action, details=notes)

