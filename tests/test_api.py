from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from hilink.api import deps
from hilink.api.errors import register_exception_handlers
from hilink.api.routes import bookings, equipment, misc, payments
from hilink.core.security import create_access_token
from hilink.db import models
from hilink.db.session import get_db
from hilink.services.payments import compute_signature

CUSTOMER = {
    "first_name": "Rina",
    "last_name": "Wijaya",
    "email": "rina@example.com",
    "phone": "+628333333333",
}


@pytest.fixture()
def api_client(session_factory, gateway):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    test_app = FastAPI()
    for module in (equipment, bookings, payments, misc):
        test_app.include_router(module.router, prefix="/api/v1")
    register_exception_handlers(test_app)
    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[deps.get_payment_gateway] = lambda: gateway

    with TestClient(test_app) as client:
        yield client

    test_app.dependency_overrides.clear()


@pytest.fixture()
def seed(session_factory):
    with session_factory() as db:
        alice = models.User(email="alice@example.com")
        bob = models.User(email="bob@example.com")
        start = datetime.now(timezone.utc) + timedelta(days=7)
        trip = models.Trip(
            title="Bromo Sunrise",
            start_date=start,
            end_date=start + timedelta(days=3),
            price_per_person=Decimal("100"),
        )
        tent = models.Equipment(name="Tent", stock_quantity=5, rental_price_per_day=Decimal("10"))
        db.add_all([alice, bob, trip, tent])
        db.commit()
        return {
            "alice": {"Authorization": f"Bearer {create_access_token({'sub': str(alice.id)})}"},
            "bob": {"Authorization": f"Bearer {create_access_token({'sub': str(bob.id)})}"},
            "trip_id": trip.id,
            "tent_id": tent.id,
        }


def test_health(api_client):
    response = api_client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_requires_bearer_token(api_client, seed):
    assert api_client.get("/api/v1/equipment/holds").status_code == 401
    response = api_client.get(
        "/api/v1/equipment/holds", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


def test_hold_lifecycle(api_client, seed):
    tent_id = seed["tent_id"]
    response = api_client.post(
        "/api/v1/equipment/holds",
        json={"equipment_id": tent_id, "quantity": 3},
        headers=seed["alice"],
    )
    assert response.status_code == 201
    hold = response.json()
    assert hold["quantity"] == 3
    assert hold["time_remaining"] == "14 minutes remaining"

    availability = api_client.get(f"/api/v1/equipment/{tent_id}/availability").json()
    assert availability["available_quantity"] == 2

    conflict = api_client.post(
        "/api/v1/equipment/holds",
        json={"equipment_id": tent_id, "quantity": 3},
        headers=seed["bob"],
    )
    assert conflict.status_code == 409
    assert conflict.json()["available"] == 2

    assert api_client.delete(
        f"/api/v1/equipment/holds/{hold['id']}", headers=seed["bob"]
    ).status_code == 404

    extended = api_client.post(
        f"/api/v1/equipment/holds/{hold['id']}/extend",
        json={"additional_minutes": 60},
        headers=seed["alice"],
    )
    assert extended.status_code == 200
    assert extended.json()["time_remaining"] == "59 minutes remaining"

    listed = api_client.get("/api/v1/equipment/holds", headers=seed["alice"]).json()
    assert [item["id"] for item in listed] == [hold["id"]]

    released = api_client.delete("/api/v1/equipment/holds", headers=seed["alice"])
    assert released.json() == {"released": 1}
    snapshot = api_client.get("/api/v1/equipment/availability").json()
    assert snapshot[0]["available_quantity"] == 5


def test_hold_validation(api_client, seed):
    response = api_client.post(
        "/api/v1/equipment/holds",
        json={"equipment_id": seed["tent_id"], "quantity": 0},
        headers=seed["alice"],
    )
    assert response.status_code == 422
    missing = api_client.post(
        "/api/v1/equipment/holds",
        json={"equipment_id": 999, "quantity": 1},
        headers=seed["alice"],
    )
    assert missing.status_code == 404
    unknown_booking = api_client.post(
        "/api/v1/equipment/holds",
        json={"equipment_id": seed["tent_id"], "quantity": 1, "booking_id": 4040},
        headers=seed["alice"],
    )
    assert unknown_booking.status_code == 404


def test_booking_flow(api_client, seed, gateway):
    response = api_client.post(
        "/api/v1/bookings",
        json={
            "trip_id": seed["trip_id"],
            "participants_count": 2,
            "equipment_items": [{"equipment_id": seed["tent_id"], "quantity": 1}],
            "customer_details": CUSTOMER,
        },
        headers=seed["alice"],
    )
    assert response.status_code == 201
    created = response.json()
    assert Decimal(str(created["total_amount"])) == Decimal("230")
    assert created["status"] == "pending"

    booking = api_client.get(f"/api/v1/bookings/{created['booking_id']}", headers=seed["alice"])
    assert booking.status_code == 200
    assert booking.json()["equipment_lines"] == [{"equipment_id": seed["tent_id"], "quantity": 1}]
    assert api_client.get(
        f"/api/v1/bookings/{created['booking_id']}", headers=seed["bob"]
    ).status_code == 404

    gross_amount = "230.00"
    webhook = api_client.post(
        "/api/v1/payments/webhook",
        json={
            "order_id": created["order_id"],
            "status_code": "200",
            "gross_amount": gross_amount,
            "transaction_status": "settlement",
            "signature_key": compute_signature(
                created["order_id"], "200", gross_amount, gateway.server_key
            ),
        },
    )
    assert webhook.status_code == 200

    status_view = api_client.get(
        f"/api/v1/payments/{created['order_id']}/status", headers=seed["alice"]
    ).json()
    assert status_view["status"] == "success"
    assert status_view["booking_status"] == "confirmed"

    listed = api_client.get("/api/v1/bookings", headers=seed["alice"]).json()
    assert listed[0]["payment_status"] == "paid"


def test_webhook_rejects_bad_signature(api_client, seed):
    response = api_client.post(
        "/api/v1/payments/webhook",
        json={
            "order_id": "HILINK-1-1",
            "status_code": "200",
            "gross_amount": "230.00",
            "transaction_status": "settlement",
            "signature_key": "forged",
        },
    )
    assert response.status_code == 403


def test_cancel_is_scoped_to_owner(api_client, seed):
    created = api_client.post(
        "/api/v1/bookings",
        json={
            "trip_id": seed["trip_id"],
            "participants_count": 1,
            "equipment_items": [{"equipment_id": seed["tent_id"], "quantity": 5}],
            "customer_details": CUSTOMER,
        },
        headers=seed["alice"],
    ).json()

    denied = api_client.post(
        f"/api/v1/bookings/{created['booking_id']}/cancel", json={}, headers=seed["bob"]
    )
    assert denied.status_code == 404

    cancelled = api_client.post(
        f"/api/v1/bookings/{created['booking_id']}/cancel",
        json={"reason": "weather"},
        headers=seed["alice"],
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    availability = api_client.get(f"/api/v1/equipment/{seed['tent_id']}/availability").json()
    assert availability["available_quantity"] == 5


def test_payment_token_reissue(api_client, seed):
    created = api_client.post(
        "/api/v1/bookings",
        json={
            "trip_id": seed["trip_id"],
            "participants_count": 1,
            "customer_details": CUSTOMER,
        },
        headers=seed["alice"],
    ).json()

    response = api_client.post(
        "/api/v1/payments/token",
        json={"booking_id": created["booking_id"], "customer_details": CUSTOMER},
        headers=seed["alice"],
    )
    assert response.status_code == 200
    assert Decimal(str(response.json()["amount"])) == Decimal("100")

    extended = api_client.post(
        f"/api/v1/bookings/{created['booking_id']}/extend-holds",
        json={"additional_minutes": 15},
        headers=seed["alice"],
    )
    assert extended.status_code == 404
