from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, require_admin, require_roles, require_staff
from app.db.session import get_db
from app.dependencies import get_notifier
from app.models.order import OrderStatus
from app.schemas.activity import (
    ActivityLogListResponse,
    ActivityLogResponse,
    ExpireOrdersResponse,
)
from app.schemas.order import (
    DashboardKpisResponse,
    PreparationStatusUpdate,
    StaffOrderListResponse,
    StaffOrderResponse,
)
from app.schemas.pickup import (
    ValidateTemporaryCodeRequest,
    ValidateTemporaryCodeResponse,
    VerifyFinalCodeRequest,
    VerifyFinalCodeResponse,
)
from app.services.activity_service import list_activity
from app.services.expiration_sweep import expire_overdue_orders
from app.services.notification_service import Notifier
from app.services.orders_service import (
    dashboard_kpis,
    get_order,
    list_orders,
    update_preparation_status,
)
from app.services.verification_service import validate_temporary_code, verify_final_code

router = APIRouter(prefix="/api/v1/staff", tags=["staff"])

require_preparer = require_roles("PREPARER", "ADMIN")
require_cashier = require_roles("CASHIER", "ADMIN")


@router.get("/orders", response_model=StaffOrderListResponse, summary="List orders for staff")
def list_staff_orders_endpoint(
    status: OrderStatus | None = Query(default=None),
    mine: bool = Query(default=False, description="Only orders the caller has worked on"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_staff),
) -> StaffOrderListResponse:
    orders = list_orders(db, status, handled_by=auth.user_id if mine else None)
    return StaffOrderListResponse(
        items=[StaffOrderResponse.model_validate(order) for order in orders]
    )


@router.get(
    "/dashboard/kpis",
    response_model=DashboardKpisResponse,
    summary="Order counts by stage",
)
def dashboard_kpis_endpoint(
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_admin),
) -> DashboardKpisResponse:
    return DashboardKpisResponse(**dashboard_kpis(db))


@router.post(
    "/orders/{order_id}/status",
    response_model=StaffOrderResponse,
    summary="Advance preparation status",
)
def update_status_endpoint(
    order_id: str,
    payload: PreparationStatusUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_preparer),
) -> StaffOrderResponse:
    order = update_preparation_status(
        db, order_id, OrderStatus(payload.status), auth, notes=payload.notes
    )
    return StaffOrderResponse.model_validate(order)


@router.post(
    "/validate-code",
    response_model=ValidateTemporaryCodeResponse,
    summary="Validate a temporary pickup code",
)
def validate_code_endpoint(
    payload: ValidateTemporaryCodeRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_preparer),
    notifier: Notifier = Depends(get_notifier),
) -> ValidateTemporaryCodeResponse:
    result = validate_temporary_code(db, payload.order_id, payload.temporary_code, auth)
    background_tasks.add_task(notifier.send_final_code, result.notice)
    return ValidateTemporaryCodeResponse(
        order_id=result.order.id,
        status=result.order.status,
        final_code=result.final_code,
    )


@router.post(
    "/verify-final-code",
    response_model=VerifyFinalCodeResponse,
    summary="Verify a final pickup code and hand the order over",
)
def verify_final_code_endpoint(
    payload: VerifyFinalCodeRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_cashier),
) -> VerifyFinalCodeResponse:
    order = verify_final_code(db, payload.order_id, payload.final_code, auth)
    return VerifyFinalCodeResponse(
        order_id=order.id,
        status=order.status,
        picked_up_at=order.picked_up_at,
    )


@router.get(
    "/orders/{order_id}/activity",
    response_model=ActivityLogListResponse,
    summary="Audit trail of an order",
)
def order_activity_endpoint(
    order_id: str,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_staff),
) -> ActivityLogListResponse:
    order = get_order(db, order_id)
    entries = list_activity(db, entity_id=str(order.id))
    return ActivityLogListResponse(
        items=[ActivityLogResponse.model_validate(entry) for entry in entries]
    )


@router.get("/activity", response_model=ActivityLogListResponse, summary="Staff activity log")
def activity_endpoint(
    action: str | None = Query(default=None, max_length=64),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_admin),
) -> ActivityLogListResponse:
    entries = list_activity(db, action=action, limit=limit, newest_first=True)
    return ActivityLogListResponse(
        items=[ActivityLogResponse.model_validate(entry) for entry in entries]
    )


@router.post(
    "/maintenance/expire-orders",
    response_model=ExpireOrdersResponse,
    summary="Cancel orders past their pickup deadline",
)
def expire_orders_endpoint(
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_admin),
) -> ExpireOrdersResponse:
    expired = expire_overdue_orders(db)
    return ExpireOrdersResponse(
        expired_count=len(expired),
        order_ids=[order.id for order in expired],
    )
