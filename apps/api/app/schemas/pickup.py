import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.order import OrderStatus


class ValidateTemporaryCodeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    order_id: str = Field(min_length=1, max_length=64)
    temporary_code: str = Field(min_length=1, max_length=32)


class ValidateTemporaryCodeResponse(BaseModel):
    order_id: uuid.UUID
    status: OrderStatus
    final_code: str


class VerifyFinalCodeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    order_id: str = Field(min_length=1, max_length=64)
    final_code: str = Field(min_length=1, max_length=32)


class VerifyFinalCodeResponse(BaseModel):
    order_id: uuid.UUID
    status: OrderStatus
    picked_up_at: datetime
    message: str = "Pickup completed"
