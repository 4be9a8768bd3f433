import pytest


@pytest.fixture
def place_order(client, order_payload):
    def _place(**overrides) -> dict:
        response = client.post("/api/v1/orders", json=order_payload(**overrides))
        assert response.status_code == 201, response.text
        return response.json()

    return _place


@pytest.fixture
def paid_order_factory(place_order, deliver_webhook):
    def _paid(**overrides) -> dict:
        order = place_order(**overrides)
        response = deliver_webhook(
            {"reference": order["order_number"], "status": "paid", "transactionId": "tx-001"}
        )
        assert response.status_code == 200, response.text
        return order

    return _paid


@pytest.fixture
def paid_order(paid_order_factory):
    return paid_order_factory()


@pytest.fixture
def confirmed_order(client, paid_order, auth_headers):
    response = client.post(
        "/api/v1/staff/validate-code",
        json={"order_id": paid_order["id"], "temporary_code": paid_order["temp_pickup_code"]},
        headers=auth_headers["preparer"],
    )
    assert response.status_code == 200, response.text
    return {**paid_order, "final_code": response.json()["final_code"]}
