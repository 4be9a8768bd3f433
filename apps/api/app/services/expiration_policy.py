from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

from app.config import settings
from app.errors import ValidationError
from app.models.order import OrderStatus
from app.models.pickup_slot import PickupSlot
from app.timeutils import as_utc

# Statuses the expiration sweep is allowed to cancel
EXPIRABLE_STATUSES = frozenset(
    {OrderStatus.PENDING_PAYMENT, OrderStatus.CONFIRMED, OrderStatus.IN_PREPARATION}
)


class PerishableLine(Protocol):
    is_perishable: bool


def pickup_window(items: Iterable[PerishableLine]) -> timedelta:
    if any(item.is_perishable for item in items):
        return timedelta(hours=settings.perishable_window_h)
    return timedelta(hours=settings.non_perishable_window_h)


def compute_deadline(items: Iterable[PerishableLine], created_at: datetime) -> datetime:
    return as_utc(created_at) + pickup_window(items)


def slot_window_end(slot: PickupSlot) -> datetime:
    local_end = datetime.combine(slot.date, slot.time_to, tzinfo=ZoneInfo(settings.pickup_timezone))
    return local_end.astimezone(timezone.utc)


def validate_slot(slot: PickupSlot, deadline: datetime) -> None:
    if slot_window_end(slot) > as_utc(deadline):
        raise ValidationError("Chosen pickup slot exceeds allowed window")


def is_expired(expires_at: datetime, now: datetime) -> bool:
    return as_utc(now) > as_utc(expires_at)


def expiration_policy() -> dict[str, int | str]:
    return {
        "expiration_policy": (
            f"{settings.perishable_window_h}h périssables, "
            f"{settings.non_perishable_window_h}h non périssables. "
            "Passé ce délai, commande annulée."
        ),
        "perishable_hours": settings.perishable_window_h,
        "non_perishable_hours": settings.non_perishable_window_h,
    }
