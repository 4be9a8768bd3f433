from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.order import ExpirationPolicyResponse, PickupSlotListResponse, PickupSlotResponse
from app.services.catalog_service import list_pickup_slots
from app.services.expiration_policy import expiration_policy

router = APIRouter(prefix="/api/v1", tags=["catalog"])


@router.get(
    "/config/policy",
    response_model=ExpirationPolicyResponse,
    summary="Pickup window policy",
)
def policy_endpoint() -> ExpirationPolicyResponse:
    return ExpirationPolicyResponse(**expiration_policy())


@router.get("/pickup-slots", response_model=PickupSlotListResponse, summary="List pickup slots")
def list_pickup_slots_endpoint(
    on_date: date | None = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
) -> PickupSlotListResponse:
    return PickupSlotListResponse(
        items=[PickupSlotResponse.model_validate(slot) for slot in list_pickup_slots(db, on_date)]
    )
