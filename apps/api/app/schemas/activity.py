import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ActivityLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    staff_id: str
    staff_name: str | None
    staff_role: str | None
    action: str
    entity_type: str
    entity_id: str
    details: str | None
    created_at: datetime


class ActivityLogListResponse(BaseModel):
    items: list[ActivityLogResponse]


class ExpireOrdersResponse(BaseModel):
    expired_count: int
    order_ids: list[uuid.UUID]
