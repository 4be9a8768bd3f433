from app.schemas.activity import ActivityLogListResponse, ActivityLogResponse, ExpireOrdersResponse
from app.schemas.order import (
    OrderCreate,
    OrderItemCreate,
    OrderListResponse,
    OrderResponse,
    StaffOrderListResponse,
    StaffOrderResponse,
)
from app.schemas.payment import (
    PaymentInitiateRequest,
    PaymentInitiateResponse,
    WebhookAck,
    WebhookEvent,
)
from app.schemas.pickup import (
    ValidateTemporaryCodeRequest,
    ValidateTemporaryCodeResponse,
    VerifyFinalCodeRequest,
    VerifyFinalCodeResponse,
)

__all__ = [
    "ActivityLogListResponse",
    "ActivityLogResponse",
    "ExpireOrdersResponse",
    "OrderCreate",
    "OrderItemCreate",
    "OrderListResponse",
    "OrderResponse",
    "StaffOrderListResponse",
    "StaffOrderResponse",
    "PaymentInitiateRequest",
    "PaymentInitiateResponse",
    "WebhookAck",
    "WebhookEvent",
    "ValidateTemporaryCodeRequest",
    "ValidateTemporaryCodeResponse",
    "VerifyFinalCodeRequest",
    "VerifyFinalCodeResponse",
]
