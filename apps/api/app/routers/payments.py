import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.config import signature_header_names
from app.db.session import get_db
from app.dependencies import get_notifier
from app.integrations.errors import UpstreamError
from app.integrations.lygos_client import PaymentProviderProtocol, get_payment_provider
from app.observability import log_event, observe_timing
from app.schemas.payment import PaymentInitiateRequest, PaymentInitiateResponse, WebhookAck
from app.services.notification_service import Notifier
from app.services.payment_service import handle_webhook, initiate_payment
from app.services.rate_limiter import (
    RedisProtocolError,
    WebhookRateLimiter,
    get_webhook_rate_limiter,
)

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


def _translate_upstream_error(err: UpstreamError) -> HTTPException:
    return HTTPException(
        status_code=(
            status.HTTP_503_SERVICE_UNAVAILABLE if err.retryable else status.HTTP_502_BAD_GATEWAY
        ),
        detail={"service": err.service, "code": err.code, "message": err.message},
    )


def _signature_from_headers(request: Request) -> str | None:
    for name in signature_header_names():
        value = request.headers.get(name)
        if value:
            return value
    return None


@router.post(
    "/initiate",
    response_model=PaymentInitiateResponse,
    summary="Start a mobile-money payment",
)
def initiate_payment_endpoint(
    payload: PaymentInitiateRequest,
    db: Session = Depends(get_db),
    provider: PaymentProviderProtocol = Depends(get_payment_provider),
) -> PaymentInitiateResponse:
    try:
        initiation = initiate_payment(db, payload.order_id, payload.method, provider)
    except UpstreamError as err:
        raise _translate_upstream_error(err) from err
    return PaymentInitiateResponse(**initiation.model_dump())


@router.post("/lygos/webhook", response_model=WebhookAck, summary="Payment provider callback")
async def lygos_webhook_endpoint(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    limiter: WebhookRateLimiter = Depends(get_webhook_rate_limiter),
    notifier: Notifier = Depends(get_notifier),
) -> WebhookAck:
    # The signature covers the exact bytes received, so the body is never re-parsed first
    raw_body = await request.body()
    source_ip = request.client.host if request.client else "unknown"

    try:
        with observe_timing("payment_webhook_seconds"):
            outcome = await run_in_threadpool(
                handle_webhook,
                db,
                raw_body,
                _signature_from_headers(request),
                source_ip,
                limiter,
            )
    except (SQLAlchemyError, OSError, RedisProtocolError) as err:
        # Database or rate-limit store unreachable
        await run_in_threadpool(db.rollback)
        log_event(
            "payment_webhook_storage_error",
            level=logging.ERROR,
            detail=f"{type(err).__name__}: {err}",
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "STORAGE_UNAVAILABLE", "message": "Retry later"},
        ) from err

    if outcome.confirmation is not None:
        background_tasks.add_task(notifier.send_order_confirmation, outcome.confirmation)

    order = outcome.order
    return WebhookAck(
        order_id=order.id if order else None,
        status=order.status if order else None,
        duplicate=outcome.duplicate,
    )
