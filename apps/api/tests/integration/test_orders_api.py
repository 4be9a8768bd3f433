from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select

from app.models.order import Order


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def test_create_order_returns_snapshot_and_temp_code(client, order_payload):
    response = client.post("/api/v1/orders", json=order_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["order_number"].startswith("GC-")
    assert len(body["temp_pickup_code"]) == 8
    assert body["currency"] == "XAF"
    assert [item["product_name"] for item in body["items"]] == ["Eau minérale", "Chips"]
    assert sum(Decimal(item["subtotal"]) for item in body["items"]) == Decimal(
        body["total_amount"]
    )
    assert "final_pickup_code" not in body


def test_non_perishable_order_gets_48h_window(client, order_payload):
    body = client.post("/api/v1/orders", json=order_payload()).json()

    assert _parse(body["expires_at"]) - _parse(body["created_at"]) == timedelta(hours=48)


def test_perishable_item_shortens_window_to_24h(client, order_payload, catalog):
    body = client.post(
        "/api/v1/orders",
        json=order_payload(
            items=[
                {"product_id": catalog["water"], "quantity": 1},
                {"product_id": catalog["yogurt"], "quantity": 1},
            ]
        ),
    ).json()

    assert _parse(body["expires_at"]) - _parse(body["created_at"]) == timedelta(hours=24)


def test_slot_after_deadline_is_rejected_and_nothing_is_stored(client, order_payload, db_session):
    response = client.post("/api/v1/orders", json=order_payload(slot_key="far_slot"))

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"
    assert db_session.scalar(select(func.count()).select_from(Order)) == 0


def test_rejected_order_does_not_consume_stock_or_slot(client, order_payload, catalog):
    slots_before = client.get("/api/v1/pickup-slots").json()["items"]

    client.post("/api/v1/orders", json=order_payload(slot_key="far_slot"))

    assert client.get("/api/v1/pickup-slots").json()["items"] == slots_before


def test_insufficient_stock_is_rejected(client, order_payload, catalog):
    response = client.post(
        "/api/v1/orders",
        json=order_payload(items=[{"product_id": catalog["yogurt"], "quantity": 6}]),
    )

    assert response.status_code == 400
    assert "Insufficient stock" in response.json()["detail"]["message"]


def test_unknown_product_is_not_found(client, order_payload):
    response = client.post(
        "/api/v1/orders",
        json=order_payload(
            items=[{"product_id": "00000000-0000-0000-0000-000000000000", "quantity": 1}]
        ),
    )

    assert response.status_code == 404


def test_unknown_fields_and_empty_items_are_rejected(client, order_payload):
    assert client.post("/api/v1/orders", json=order_payload(coupon="FREE")).status_code == 422
    assert client.post("/api/v1/orders", json={**order_payload(), "items": []}).status_code == 422


def test_zero_quantity_is_rejected(client, order_payload, catalog):
    response = client.post(
        "/api/v1/orders",
        json=order_payload(items=[{"product_id": catalog["water"], "quantity": 0}]),
    )

    assert response.status_code == 422


def test_get_order_by_id(client, place_order):
    order = place_order()

    response = client.get(f"/api/v1/orders/{order['id']}")

    assert response.status_code == 200
    assert response.json()["order_number"] == order["order_number"]


def test_get_unknown_order_is_not_found(client):
    for order_id in ("00000000-0000-0000-0000-000000000000", "not-a-uuid"):
        response = client.get(f"/api/v1/orders/{order_id}")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"


def test_customer_lists_only_own_orders(client, order_payload, auth_headers):
    mine = client.post(
        "/api/v1/orders", json=order_payload(), headers=auth_headers["customer"]
    ).json()
    client.post("/api/v1/orders", json=order_payload())

    response = client.get("/api/v1/orders/mine", headers=auth_headers["customer"])

    assert response.status_code == 200
    assert [order["id"] for order in response.json()["items"]] == [mine["id"]]


def test_staff_cannot_use_customer_listing(client, auth_headers):
    response = client.get("/api/v1/orders/mine", headers=auth_headers["preparer"])

    assert response.status_code == 403


def test_policy_endpoint(client):
    response = client.get("/api/v1/config/policy")

    assert response.status_code == 200
    assert response.json()["perishable_hours"] == 24
    assert response.json()["non_perishable_hours"] == 48


def test_pickup_slots_can_be_filtered_by_date(client, catalog):
    all_slots = client.get("/api/v1/pickup-slots").json()["items"]
    first_date = all_slots[0]["date"]

    filtered = client.get("/api/v1/pickup-slots", params={"date": first_date}).json()["items"]

    assert filtered
    assert all(slot["date"] == first_date for slot in filtered)
    assert client.get("/api/v1/pickup-slots", params={"date": "nope"}).status_code == 422
