from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, get_optional_auth_context, require_roles
from app.db.session import get_db
from app.observability import observe_timing
from app.schemas.order import OrderCreate, OrderListResponse, OrderResponse
from app.services.orders_service import create_order, get_order, list_orders

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.post("", response_model=OrderResponse, summary="Place an order", status_code=201)
def create_order_endpoint(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    auth: AuthContext | None = Depends(get_optional_auth_context),
) -> OrderResponse:
    with observe_timing("order_create_seconds"):
        order = create_order(db, payload, auth)
    return OrderResponse.model_validate(order)


@router.get("/mine", response_model=OrderListResponse, summary="List my orders")
def list_my_orders_endpoint(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles("CUSTOMER")),
) -> OrderListResponse:
    orders = list_orders(db, user_id=auth.user_id)
    return OrderListResponse(items=[OrderResponse.model_validate(order) for order in orders])


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order")
def get_order_endpoint(order_id: str, db: Session = Depends(get_db)) -> OrderResponse:
    return OrderResponse.model_validate(get_order(db, order_id))
