import datetime as dt
import uuid
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.order import OrderStatus

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class OrderItemCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_id: uuid.UUID
    quantity: int = Field(gt=0, le=1000)


class OrderCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    customer_name: str = Field(min_length=1, max_length=255)
    customer_phone: str = Field(min_length=3, max_length=50)
    customer_email: str | None = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    pickup_slot_id: uuid.UUID
    items: list[OrderItemCreate] = Field(min_length=1, max_length=100)
    payment_method: str | None = Field(default=None, max_length=32)
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("customer_name", "customer_phone", "customer_email", "notes")
    @classmethod
    def strip_strings(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return value.strip()


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: uuid.UUID
    product_name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal
    is_perishable: bool


class PickupSlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    date: dt.date
    time_from: dt.time
    time_to: dt.time
    capacity: int
    remaining: int
    is_active: bool


class _OrderBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    customer_name: str
    customer_phone: str
    customer_email: str | None
    items: list[OrderItemResponse]
    total_amount: Decimal
    currency: str
    payment_method: str | None
    notes: str | None
    pickup_slot: PickupSlotResponse
    status: OrderStatus
    created_at: dt.datetime
    updated_at: dt.datetime
    expires_at: dt.datetime
    code_validated_at: dt.datetime | None
    picked_up_at: dt.datetime | None


class OrderResponse(_OrderBase):
    """Customer view; the temporary code is the customer's proof of order."""

    temp_pickup_code: str


class StaffOrderResponse(_OrderBase):
    """Staff view; pickup codes are never shown to staff."""


class OrderListResponse(BaseModel):
    items: list[OrderResponse]


class StaffOrderListResponse(BaseModel):
    items: list[StaffOrderResponse]


class PreparationStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["in_preparation", "ready"]
    notes: str | None = Field(default=None, max_length=1000)


class PickupSlotListResponse(BaseModel):
    items: list[PickupSlotResponse]


class ExpirationPolicyResponse(BaseModel):
    expiration_policy: str
    perishable_hours: int
    non_perishable_hours: int


class DashboardKpisResponse(BaseModel):
    """Order counts for the staff dashboard; pending covers unpaid and paid-not-validated."""

    total_orders: int
    pending_orders: int
    in_preparation_orders: int
    ready_orders: int
    completed_orders: int
    canceled_orders: int
    by_status: dict[OrderStatus, int]
