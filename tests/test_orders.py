from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tirestore.models.order import Order


@pytest.fixture
def make_order(db_session: Session):
    counter = {"n": 0}

    def _make_order(user=None, email: str = "buyer@example.com", total: str = "100.00", **overrides) -> Order:
        counter["n"] += 1
        values = {
            "order_number": f"ORD-TEST-{counter['n']:04d}",
            "user_id": user.id if user else None,
            "user_email": user.email if user else email,
            "user_name": user.name if user else "Guest",
            "status": "processing",
            "payment_status": "paid",
            "subtotal": Decimal(total),
            "total": Decimal(total),
        }
        values.update(overrides)
        order = Order(**values)
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make_order


def test_user_sees_own_and_matching_guest_orders(
    client: TestClient, make_user, headers_for, make_order
):
    user = make_user(email="owner@example.com")
    stranger = make_user(email="stranger@example.com")
    own = make_order(user)
    guest = make_order(email="owner@example.com")
    make_order(stranger)
    make_order(email="someone@example.com")

    payload = client.get("/api/orders", headers=headers_for(user)).json()

    assert sorted(order["id"] for order in payload["data"]) == sorted([own.id, guest.id])
    assert payload["meta"]["pagination"]["total"] == 2


def test_admin_sees_all_orders_and_filters(client: TestClient, admin_headers: dict, make_user, make_order):
    user = make_user(email="owner@example.com")
    make_order(user, total="50.00")
    make_order(user, total="300.00", status="shipped")
    make_order(email="guest@example.com", total="120.00")

    everything = client.get("/api/orders", headers=admin_headers, params={"sortBy": "total", "sortOrder": "asc"}).json()
    shipped = client.get("/api/orders", headers=admin_headers, params={"status": "shipped"}).json()
    by_user = client.get("/api/orders", headers=admin_headers, params={"userId": user.id}).json()

    assert [order["total"] for order in everything["data"]] == [50.0, 120.0, 300.0]
    assert [order["total"] for order in shipped["data"]] == [300.0]
    assert by_user["meta"]["pagination"]["total"] == 2


def test_order_detail_access(client: TestClient, make_user, headers_for, admin_headers: dict, make_order):
    owner = make_user(email="owner@example.com")
    other = make_user(email="other@example.com")
    order = make_order(owner)

    assert client.get(f"/api/orders/{order.id}", headers=headers_for(owner)).status_code == 200
    assert client.get(f"/api/orders/{order.id}", headers=headers_for(other)).status_code == 403
    assert client.get(f"/api/orders/{order.id}", headers=admin_headers).status_code == 200
    assert client.get("/api/orders/9999", headers=admin_headers).json()["message"] == "Order not found"


def test_status_change_to_shipped_queues_email(
    client: TestClient, admin_headers: dict, make_order, sent_emails: list
):
    order = make_order()

    response = client.put(
        f"/api/orders/{order.id}",
        headers=admin_headers,
        json={"status": "shipped", "trackingNumber": "1Z999"},
    )

    assert response.json()["data"]["trackingNumber"] == "1Z999"
    assert sent_emails == [("send_order_shipped", (order.id,))]

    client.put(f"/api/orders/{order.id}", headers=admin_headers, json={"notes": "Left at door"})
    assert len(sent_emails) == 1


def test_invalid_status_is_rejected(client: TestClient, admin_headers: dict, make_order):
    order = make_order()

    response = client.put(f"/api/orders/{order.id}", headers=admin_headers, json={"status": "teleported"})

    assert response.status_code == 422


def test_non_admin_cannot_update_orders(client: TestClient, user_headers: dict, make_order):
    order = make_order()

    assert client.put(f"/api/orders/{order.id}", headers=user_headers, json={"status": "cancelled"}).status_code == 403


def test_order_stats_summary(client: TestClient, admin_headers: dict, make_order):
    make_order(total="100.00", status="pending")
    make_order(total="200.00", status="completed")
    make_order(total="300.00", status="completed")

    data = client.get("/api/orders/stats/summary", headers=admin_headers).json()["data"]

    assert data["totalOrders"] == 3
    assert data["totalRevenue"] == 600.0
    assert data["avgOrderValue"] == 200.0
    assert data["statusBreakdown"] == {"pending": 1, "completed": 2}
    assert data["pendingOrders"] == 1
    assert data["cancelledOrders"] == 0
