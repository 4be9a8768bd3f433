from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

import pytest

from app.config import settings
from app.errors import ValidationError
from app.models.pickup_slot import PickupSlot
from app.services.expiration_policy import (
    compute_deadline,
    expiration_policy,
    is_expired,
    pickup_window,
    slot_window_end,
    validate_slot,
)

CREATED_AT = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


@dataclass
class _Line:
    is_perishable: bool


def _slot(day: date, time_to: time) -> PickupSlot:
    return PickupSlot(date=day, time_from=time(9, 0), time_to=time_to, capacity=5, remaining=5)


def test_window_is_24h_when_any_line_is_perishable():
    assert pickup_window([_Line(False), _Line(True)]) == timedelta(hours=24)


def test_window_is_48h_for_non_perishable_orders():
    assert pickup_window([_Line(False), _Line(False)]) == timedelta(hours=48)


def test_deadline_is_created_at_plus_window():
    assert compute_deadline([_Line(True)], CREATED_AT) == CREATED_AT + timedelta(hours=24)
    assert compute_deadline([_Line(False)], CREATED_AT) == CREATED_AT + timedelta(hours=48)


def test_deadline_treats_naive_timestamps_as_utc():
    naive = CREATED_AT.replace(tzinfo=None)
    assert compute_deadline([_Line(False)], naive) == CREATED_AT + timedelta(hours=48)


def test_slot_ending_exactly_at_deadline_is_accepted():
    deadline = compute_deadline([_Line(True)], CREATED_AT)
    validate_slot(_slot(date(2026, 10, 20), time(8, 0)), deadline)


def test_slot_ending_after_deadline_is_rejected():
    deadline = compute_deadline([_Line(True)], CREATED_AT)

    with pytest.raises(ValidationError) as exc_info:
        validate_slot(_slot(date(2026, 10, 20), time(8, 1)), deadline)
    assert exc_info.value.message == "Chosen pickup slot exceeds allowed window"


def test_slot_window_end_uses_pickup_timezone(monkeypatch):
    monkeypatch.setattr(settings, "pickup_timezone", "Africa/Brazzaville")

    end = slot_window_end(_slot(date(2026, 10, 20), time(11, 0)))

    assert end == datetime(2026, 10, 20, 10, 0, tzinfo=timezone.utc)


def test_is_expired_only_after_deadline():
    deadline = CREATED_AT + timedelta(hours=24)
    assert not is_expired(deadline, deadline)
    assert is_expired(deadline, deadline + timedelta(seconds=1))


def test_policy_description_reflects_configured_windows():
    policy = expiration_policy()
    assert policy["perishable_hours"] == 24
    assert policy["non_perishable_hours"] == 48
    assert "24h" in policy["expiration_policy"]
