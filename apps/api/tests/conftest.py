import hmac
import json
import threading
from datetime import timedelta
from decimal import Decimal
from hashlib import sha256

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401
from app.auth.jwt import issue_jwt
from app.config import settings
from app.db.base import Base
from app.db.session import engine as app_engine
from app.db.session import get_db
from app.dependencies import get_notifier
from app.main import app
from app.models.pickup_slot import PickupSlot
from app.models.product import Product
from app.observability import metrics_store
from app.services.notification_service import Notifier
from app.services.rate_limiter import reset_rate_limiter_state
from app.timeutils import utc_now


class RecordingNotificationClient:
    def __init__(self) -> None:
        self.emails: list[tuple[str, str, str]] = []
        self.sms: list[tuple[str, str]] = []

    def send_email(self, to: str, subject: str, html: str) -> None:
        self.emails.append((to, subject, html))

    def send_sms(self, to: str, message: str) -> None:
        self.sms.append((to, message))


@pytest.fixture(scope="session", autouse=True)
def enable_testing_mode():
    original = settings.testing
    settings.testing = True
    yield
    settings.testing = original


@pytest.fixture(scope="session", autouse=True)
def setup_test_schema():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield
    Base.metadata.drop_all(bind=app_engine)


@pytest.fixture(autouse=True)
def reset_db():
    reset_rate_limiter_state()
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield


@pytest.fixture(autouse=True)
def reset_metrics_store():
    metrics_store.reset()
    yield


@pytest.fixture
def db_session():
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def notification_client():
    return RecordingNotificationClient()


@pytest.fixture
def client(db_session, notification_client):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)
    db_session_lock = threading.Lock()

    def override_get_db():
        if db_session_lock.acquire(blocking=False):
            try:
                yield db_session
            finally:
                db_session_lock.release()
            return

        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: Notifier(notification_client)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(role: str, sub: str, name: str | None = None) -> dict[str, str]:
        token = issue_jwt({"sub": sub, "role": role, "name": name or sub}, settings.jwt_secret)
        return {"Authorization": f"Bearer {token}"}

    return {
        "customer": _headers("CUSTOMER", "customer-1"),
        "preparer": _headers("PREPARER", "preparer-1", "Awa"),
        "cashier": _headers("CASHIER", "cashier-1", "Koffi"),
        "admin": _headers("ADMIN", "admin-1", "Admin"),
    }


@pytest.fixture
def slot_factory(db_session):
    def _make(end_offset: timedelta, capacity: int = 10, is_active: bool = True) -> PickupSlot:
        end = (utc_now() + end_offset).replace(microsecond=0)
        # Keep the window inside a single day
        start = max(end - timedelta(hours=1), end.replace(hour=0, minute=0, second=0))
        if start == end:
            end += timedelta(minutes=1)
        slot = PickupSlot(
            date=end.date(),
            time_from=start.time(),
            time_to=end.time(),
            capacity=capacity,
            remaining=capacity,
            is_active=is_active,
        )
        db_session.add(slot)
        db_session.commit()
        db_session.refresh(slot)
        return slot

    return _make


@pytest.fixture
def catalog(db_session, slot_factory):
    water = Product(name="Eau minérale", sku="EAU-1", price=Decimal("1.50"), stock=20)
    chips = Product(name="Chips", sku="CHIPS-1", price=Decimal("2.00"), stock=15)
    yogurt = Product(
        name="Yaourt", sku="YAOURT-1", price=Decimal("3.20"), stock=5, is_perishable=True
    )
    db_session.add_all([water, chips, yogurt])
    db_session.commit()

    near_slot = slot_factory(timedelta(hours=2))
    far_slot = slot_factory(timedelta(days=3))
    return {
        "water": str(water.id),
        "chips": str(chips.id),
        "yogurt": str(yogurt.id),
        "near_slot": str(near_slot.id),
        "far_slot": str(far_slot.id),
    }


@pytest.fixture
def order_payload(catalog):
    def _payload(items=None, slot_key: str = "near_slot", **overrides) -> dict:
        payload = {
            "customer_name": "Mireille N.",
            "customer_phone": "+242060000001",
            "customer_email": "mireille@example.com",
            "pickup_slot_id": catalog[slot_key],
            "items": items
            or [
                {"product_id": catalog["water"], "quantity": 1},
                {"product_id": catalog["chips"], "quantity": 2},
            ],
            "payment_method": "momo",
        }
        payload.update(overrides)
        return payload

    return _payload


def sign_body(raw_body: bytes, secret: str | None = None) -> str:
    secret = secret if secret is not None else settings.payment_webhook_secret
    return hmac.new(secret.encode(), raw_body, sha256).hexdigest()


@pytest.fixture
def webhook_signature():
    return sign_body


@pytest.fixture
def deliver_webhook(client):
    def _deliver(payload: dict, *, signature: str | None = None, prefix: str = "sha256="):
        raw_body = json.dumps(payload).encode()
        header = signature if signature is not None else f"{prefix}{sign_body(raw_body)}"
        return client.post(
            "/api/v1/payments/lygos/webhook",
            content=raw_body,
            headers={"Content-Type": "application/json", "X-Lygos-Signature": header},
        )

    return _deliver
