import hmac
import logging
from dataclasses import dataclass
from hashlib import sha256

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.auth.dependencies import SYSTEM_ACTOR
from app.config import settings
from app.errors import IllegalTransitionError, RateLimitedError, SignatureError, ValidationError
from app.integrations.lygos_client import PaymentInitiation, PaymentProviderProtocol
from app.models.order import Order, OrderStatus
from app.observability import log_event, metrics_store
from app.schemas.payment import WebhookEvent
from app.services.expiration_policy import is_expired
from app.services.notification_service import OrderConfirmation, build_order_confirmation
from app.services.orders_service import apply_transition, get_order, get_order_by_reference
from app.services.rate_limiter import WebhookRateLimiter
from app.services.state_machine import OrderTrigger
from app.timeutils import utc_now

SUCCESS_STATUSES = frozenset({"success", "paid"})
FAILURE_STATUSES = frozenset({"failed", "canceled"})
SUPPORTED_PAYMENT_METHODS = frozenset({"momo"})

# Statuses an order can only have reached after its payment succeeded
_PAID_OR_LATER = frozenset(
    {
        OrderStatus.PAID,
        OrderStatus.CONFIRMED,
        OrderStatus.IN_PREPARATION,
        OrderStatus.READY,
        OrderStatus.COMPLETED,
    }
)


@dataclass
class WebhookOutcome:
    order: Order | None
    duplicate: bool = False
    confirmation: OrderConfirmation | None = None


def verify_signature(raw_body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check an HMAC-SHA256 hex digest computed over the exact bytes received."""
    if not secret or not signature:
        return False
    provided = signature.strip()
    if provided.startswith("sha256="):
        provided = provided[len("sha256=") :]
    expected = hmac.new(secret.encode(), raw_body, sha256).hexdigest()
    return hmac.compare_digest(expected.encode(), provided.lower().encode())


def parse_webhook_event(raw_body: bytes) -> tuple[WebhookEvent, str, str]:
    try:
        event = WebhookEvent.model_validate_json(raw_body)
    except PydanticValidationError as err:
        raise ValidationError("Invalid payload") from err

    reference = event.resolved_reference()
    if not reference or not event.status:
        raise ValidationError("Invalid payload")
    return event, reference, event.status.strip().lower()


def handle_webhook(
    db: Session,
    raw_body: bytes,
    signature: str | None,
    source_ip: str,
    limiter: WebhookRateLimiter,
) -> WebhookOutcome:
    if not limiter.check(source_ip).allowed:
        metrics_store.increment("webhook_rejected_total")
        log_event("payment_webhook_rate_limited", level=logging.WARNING, detail=source_ip)
        raise RateLimitedError(retry_after_s=limiter.window_s)

    if not verify_signature(raw_body, signature, settings.payment_webhook_secret):
        metrics_store.increment("webhook_rejected_total")
        log_event("payment_webhook_invalid_signature", level=logging.WARNING, detail=source_ip)
        raise SignatureError()

    event, reference, status = parse_webhook_event(raw_body)
    order = get_order_by_reference(db, reference)

    if status in SUCCESS_STATUSES:
        return _apply_payment_success(db, order, event)
    if status in FAILURE_STATUSES:
        return _apply_payment_failure(db, order, status)

    log_event("payment_webhook_status_ignored", order_id=str(order.id), detail=status)
    return WebhookOutcome(order=order)


def _apply_payment_success(db: Session, order: Order, event: WebhookEvent) -> WebhookOutcome:
    if order.status in _PAID_OR_LATER:
        log_event("payment_webhook_duplicate", order_id=str(order.id), detail="success")
        return WebhookOutcome(order=order, duplicate=True)

    if order.status == OrderStatus.PENDING_PAYMENT and is_expired(order.expires_at, utc_now()):
        log_event(
            "payment_received_after_expiry",
            level=logging.WARNING,
            order_id=str(order.id),
        )

    values = {}
    if event.transaction_id:
        values["payment_transaction_id"] = event.transaction_id
    try:
        order = apply_transition(
            db,
            order,
            OrderTrigger.PAYMENT_SUCCEEDED,
            SYSTEM_ACTOR,
            action="payment_received",
            details=f"Paiement confirmé ({event.transaction_id or 'n/a'})",
            values=values,
        )
    except IllegalTransitionError:
        # A concurrent delivery of the same event got there first
        if order.status in _PAID_OR_LATER:
            return WebhookOutcome(order=order, duplicate=True)
        raise

    metrics_store.increment("payments_reconciled_total")
    return WebhookOutcome(order=order, confirmation=build_order_confirmation(order))


def _apply_payment_failure(db: Session, order: Order, status: str) -> WebhookOutcome:
    if order.status == OrderStatus.CANCELED:
        log_event("payment_webhook_duplicate", order_id=str(order.id), detail=status)
        return WebhookOutcome(order=order, duplicate=True)

    try:
        order = apply_transition(
            db,
            order,
            OrderTrigger.PAYMENT_FAILED,
            SYSTEM_ACTOR,
            action="payment_failed",
            details=f"Paiement {status}",
        )
    except IllegalTransitionError:
        if order.status == OrderStatus.CANCELED:
            return WebhookOutcome(order=order, duplicate=True)
        raise

    metrics_store.increment("payments_reconciled_total")
    return WebhookOutcome(order=order)


def initiate_payment(
    db: Session,
    order_id: str,
    method: str,
    provider: PaymentProviderProtocol,
) -> PaymentInitiation:
    order = get_order(db, order_id)
    if method not in SUPPORTED_PAYMENT_METHODS:
        raise ValidationError("Unsupported method")
    if order.status != OrderStatus.PENDING_PAYMENT:
        raise ValidationError("Order is not awaiting payment")

    initiation = provider.initiate_payment(
        order_id=str(order.id),
        amount=order.total_amount,
        currency=order.currency,
        payer_phone=order.customer_phone,
    )

    if initiation.transaction_id:
        order.payment_transaction_id = initiation.transaction_id
    order.payment_method = method
    db.commit()
    log_event("payment_initiated", order_id=str(order.id), detail=initiation.transaction_id)
    return initiation
