import re

import pytest
from sqlalchemy.orm import sessionmaker

from app.auth.dependencies import SYSTEM_ACTOR, AuthContext
from app.db.session import engine
from app.errors import ForbiddenRoleError, IllegalTransitionError, InvalidCodeError, NotFoundError
from app.models.order import OrderStatus
from app.observability import metrics_store
from app.schemas.order import OrderCreate
from app.services.activity_service import list_activity
from app.services.orders_service import apply_transition, create_order, get_order
from app.services.state_machine import OrderTrigger
from app.services.verification_service import validate_temporary_code, verify_final_code

PREPARER = AuthContext(user_id="preparer-1", role="PREPARER", name="Awa")
CASHIER = AuthContext(user_id="cashier-1", role="CASHIER", name="Koffi")


@pytest.fixture
def paid_order(db_session, order_payload):
    order = create_order(db_session, OrderCreate(**order_payload()))
    return apply_transition(
        db_session, order, OrderTrigger.PAYMENT_SUCCEEDED, SYSTEM_ACTOR, action="payment_received"
    )


def _actions(db_session, order) -> list[str]:
    return [entry.action for entry in list_activity(db_session, entity_id=str(order.id))]


def test_correct_temp_code_confirms_and_issues_final_code(db_session, paid_order):
    result = validate_temporary_code(
        db_session, str(paid_order.id), paid_order.temp_pickup_code, PREPARER
    )

    assert result.order.status == OrderStatus.CONFIRMED
    assert re.fullmatch(r"[0-9A-F]{8}", result.final_code)
    assert result.order.final_pickup_code == result.final_code
    assert result.order.code_validated_at is not None
    assert result.notice.final_code == result.final_code
    assert _actions(db_session, paid_order)[-1] == "validated_code"


def test_wrong_temp_code_leaves_order_unchanged(db_session, paid_order):
    with pytest.raises(InvalidCodeError) as exc_info:
        validate_temporary_code(db_session, str(paid_order.id), "WRONG123", PREPARER)

    assert exc_info.value.code == "INVALID_CODE"
    db_session.expire_all()
    order = get_order(db_session, str(paid_order.id))
    assert order.status == OrderStatus.PAID
    assert order.final_pickup_code is None
    assert metrics_store.count("pickup_invalid_code_total") == 1


def test_temp_code_comparison_is_case_sensitive(db_session, paid_order):
    with pytest.raises(InvalidCodeError):
        validate_temporary_code(
            db_session, str(paid_order.id), paid_order.temp_pickup_code.lower(), PREPARER
        )


def test_temp_code_before_payment_is_illegal(db_session, order_payload):
    order = create_order(db_session, OrderCreate(**order_payload()))

    with pytest.raises(IllegalTransitionError):
        validate_temporary_code(db_session, str(order.id), order.temp_pickup_code, PREPARER)
    assert get_order(db_session, str(order.id)).final_pickup_code is None


def test_temp_code_cannot_be_spent_twice(db_session, paid_order):
    code = paid_order.temp_pickup_code
    validate_temporary_code(db_session, str(paid_order.id), code, PREPARER)

    with pytest.raises(IllegalTransitionError):
        validate_temporary_code(db_session, str(paid_order.id), code, PREPARER)


def test_cashier_cannot_validate_temp_code(db_session, paid_order):
    with pytest.raises(ForbiddenRoleError):
        validate_temporary_code(
            db_session, str(paid_order.id), paid_order.temp_pickup_code, CASHIER
        )


def test_unknown_order_is_not_found(db_session, catalog):
    with pytest.raises(NotFoundError):
        validate_temporary_code(
            db_session, "00000000-0000-4000-8000-000000000000", "ABCDEFGH", PREPARER
        )


def test_final_code_completes_confirmed_order(db_session, paid_order):
    result = validate_temporary_code(
        db_session, str(paid_order.id), paid_order.temp_pickup_code, PREPARER
    )

    order = verify_final_code(db_session, str(paid_order.id), result.final_code, CASHIER)

    assert order.status == OrderStatus.COMPLETED
    assert order.picked_up_at is not None
    assert _actions(db_session, order)[-1] == "completed_order"


def test_final_code_completes_ready_order(db_session, paid_order):
    result = validate_temporary_code(
        db_session, str(paid_order.id), paid_order.temp_pickup_code, PREPARER
    )
    for trigger in (OrderTrigger.PREPARATION_STARTED, OrderTrigger.MARKED_READY):
        apply_transition(db_session, result.order, trigger, PREPARER, action=trigger.value)

    order = verify_final_code(db_session, str(paid_order.id), result.final_code, CASHIER)

    assert order.status == OrderStatus.COMPLETED


def test_final_code_is_rejected_while_in_preparation(db_session, paid_order):
    result = validate_temporary_code(
        db_session, str(paid_order.id), paid_order.temp_pickup_code, PREPARER
    )
    apply_transition(
        db_session,
        result.order,
        OrderTrigger.PREPARATION_STARTED,
        PREPARER,
        action="preparation_started",
    )

    with pytest.raises(IllegalTransitionError):
        verify_final_code(db_session, str(paid_order.id), result.final_code, CASHIER)


def test_final_code_is_invalid_before_it_is_issued(db_session, paid_order):
    with pytest.raises(InvalidCodeError):
        verify_final_code(db_session, str(paid_order.id), "", CASHIER)
    with pytest.raises(InvalidCodeError):
        verify_final_code(db_session, str(paid_order.id), "ABCDEF12", CASHIER)


def test_wrong_final_code_leaves_order_confirmed(db_session, paid_order):
    validate_temporary_code(db_session, str(paid_order.id), paid_order.temp_pickup_code, PREPARER)

    with pytest.raises(InvalidCodeError):
        verify_final_code(db_session, str(paid_order.id), "00000000", CASHIER)

    assert get_order(db_session, str(paid_order.id)).status == OrderStatus.CONFIRMED


def test_temp_code_does_not_work_as_final_code(db_session, paid_order):
    validate_temporary_code(db_session, str(paid_order.id), paid_order.temp_pickup_code, PREPARER)

    with pytest.raises(InvalidCodeError):
        verify_final_code(db_session, str(paid_order.id), paid_order.temp_pickup_code, CASHIER)


def test_concurrent_final_verification_succeeds_exactly_once(db_session, paid_order):
    result = validate_temporary_code(
        db_session, str(paid_order.id), paid_order.temp_pickup_code, PREPARER
    )
    other_session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        # Both cashiers load the order while it is still confirmed
        stale = get_order(other_session, str(paid_order.id))
        assert stale.status == OrderStatus.CONFIRMED

        verify_final_code(db_session, str(paid_order.id), result.final_code, CASHIER)

        with pytest.raises(IllegalTransitionError) as exc_info:
            apply_transition(
                other_session,
                stale,
                OrderTrigger.PICKUP_COMPLETED,
                CASHIER,
                action="completed_order",
            )
        assert exc_info.value.current == OrderStatus.COMPLETED.value
    finally:
        other_session.close()

    assert _actions(db_session, paid_order).count("completed_order") == 1
