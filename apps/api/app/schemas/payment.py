import uuid
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.models.order import OrderStatus


class PaymentInitiateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    order_id: str = Field(min_length=1, max_length=64)
    method: str = Field(min_length=1, max_length=32)


class PaymentInitiateResponse(BaseModel):
    payment_url: str | None
    transaction_id: str | None
    provider: str


class WebhookEvent(BaseModel):
    """Provider callback; unknown fields are tolerated for forward compatibility."""

    model_config = ConfigDict(extra="allow")

    reference: str | None = None
    status: str | None = None
    transaction_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("transactionId", "transaction_id"),
    )
    metadata: dict[str, Any] | None = None

    def resolved_reference(self) -> str | None:
        if self.reference:
            return self.reference
        order_id = (self.metadata or {}).get("orderId")
        return str(order_id) if order_id else None


class WebhookAck(BaseModel):
    received: bool = True
    order_id: uuid.UUID | None = None
    status: OrderStatus | None = None
    duplicate: bool = False
