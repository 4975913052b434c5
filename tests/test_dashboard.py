from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tirestore.models.contact import ContactMessage
from tirestore.models.newsletter import NewsletterCampaign, NewsletterSubscription
from tirestore.models.order import Order, OrderItem
from tirestore.utils import email as mailer


@pytest.fixture
def subscribers(db_session: Session):
    def _subscribers(count: int, status: str = "active"):
        rows = [
            NewsletterSubscription(email=f"{status}{index}@example.com", name=f"Reader {index}", status=status)
            for index in range(count)
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    return _subscribers


def _campaign(client: TestClient, admin_headers: dict, **overrides):
    body = {"title": "Winter sale", "subject": "Winter deals", "content": "Save on winter tires"}
    body.update(overrides)
    return client.post("/api/dashboard/campaigns", headers=admin_headers, json=body)


def test_dashboard_is_admin_only(client: TestClient, user_headers: dict):
    assert client.get("/api/dashboard/overview", headers=user_headers).status_code == 403
    assert client.get("/api/dashboard/overview").status_code == 401


def test_overview_counts_and_best_sellers(
    client: TestClient, db_session: Session, admin_headers: dict, make_product, subscribers
):
    popular = make_product(name="Popular")
    niche = make_product(name="Niche")
    order = Order(
        order_number="ORD-1",
        user_email="buyer@example.com",
        user_name="Buyer",
        status="processing",
        payment_status="paid",
        subtotal=Decimal("500"),
        total=Decimal("500"),
    )
    order.items = [
        OrderItem(product_id=popular.id, product_name="Popular", product_size="205/55R16", product_sku="A", quantity=4,
                  unit_price=Decimal("100"), total_price=Decimal("400")),
        OrderItem(product_id=niche.id, product_name="Niche", product_size="205/55R16", product_sku="B", quantity=1,
                  unit_price=Decimal("100"), total_price=Decimal("100")),
    ]
    db_session.add(order)
    db_session.add(ContactMessage(name="Pat", email="pat@example.com", subject="Hello there",
                                  message="Need a quote please", inquiry_type="quote", status="pending"))
    db_session.commit()
    subscribers(2)
    subscribers(1, status="unsubscribed")

    data = client.get("/api/dashboard/overview", headers=admin_headers).json()["data"]

    assert data["totals"]["orders"] == 1
    assert data["totals"]["revenue"] == 500.0
    assert data["totals"]["subscriptions"] == 3
    assert data["totals"]["activeSubscriptions"] == 2
    assert data["pendingContacts"] == 1
    assert data["contactsByType"] == {"quote": 1}
    assert [(p["name"], p["totalSold"]) for p in data["bestSellingProducts"]] == [("Popular", 4), ("Niche", 1)]


def test_low_stock_severity(client: TestClient, admin_headers: dict, make_product):
    make_product(name="Empty", stock=0)
    make_product(name="Scarce", stock=2)
    make_product(name="Low", stock=7)
    make_product(name="Plenty", stock=40)

    payload = client.get("/api/dashboard/low-stock", headers=admin_headers).json()

    assert [(p["name"], p["severity"]) for p in payload["data"]] == [
        ("Empty", "critical"),
        ("Scarce", "critical"),
        ("Low", "low"),
    ]
    assert payload["meta"] == {"threshold": 10, "count": 3}


def test_contact_reply_resolves_and_queues_email(
    client: TestClient, db_session: Session, admin_headers: dict, sent_emails: list
):
    contact = ContactMessage(name="Pat", email="pat@example.com", subject="Hello there",
                             message="Need a quote please", inquiry_type="quote", status="pending")
    db_session.add(contact)
    db_session.commit()

    response = client.post(
        f"/api/dashboard/contacts/{contact.id}/reply",
        headers=admin_headers,
        json={"message": "Quote attached", "markResolved": False},
    )

    data = response.json()["data"]
    assert data["status"] == "in-progress"
    assert data["adminResponse"] == "Quote attached"
    assert sent_emails == [("send_contact_reply", (contact.id, "Quote attached"))]


def test_bulk_email_without_active_subscribers(client: TestClient, admin_headers: dict, subscribers):
    subscribers(2, status="unsubscribed")

    response = client.post(
        "/api/dashboard/subscriptions/send-email",
        headers=admin_headers,
        json={"subject": "News", "content": "Fresh stock"},
    )

    assert response.status_code == 400
    assert response.json()["message"] == "No active subscribers found"


def test_bulk_email_counts_queue_failures(
    client: TestClient, db_session: Session, admin_headers: dict, subscribers, monkeypatch
):
    rows = subscribers(12)
    calls = []

    def flaky_enqueue(task, *args):
        calls.append(args[0])
        return args[0] != "active3@example.com"

    monkeypatch.setattr(mailer, "enqueue", flaky_enqueue)

    response = client.post(
        "/api/dashboard/subscriptions/send-email",
        headers=admin_headers,
        json={"subject": "News", "content": "Fresh stock"},
    )

    assert response.json()["data"] == {"totalRecipients": 12, "successCount": 11, "failureCount": 1}
    assert len(calls) == 12
    for row in rows:
        db_session.refresh(row)
    assert rows[3].last_email_sent is None
    assert all(row.last_email_sent is not None for i, row in enumerate(rows) if i != 3)


def test_bulk_email_to_selected_addresses(client: TestClient, admin_headers: dict, subscribers, sent_emails: list):
    subscribers(3)

    response = client.post(
        "/api/dashboard/subscriptions/send-email",
        headers=admin_headers,
        json={"subject": "News", "content": "Fresh stock", "emails": ["ACTIVE1@example.com"]},
    )

    assert response.json()["data"]["totalRecipients"] == 1
    assert [(name, args[0]) for name, args in sent_emails] == [("send_email_task", "active1@example.com")]


def test_unsubscribing_stamps_timestamp(client: TestClient, admin_headers: dict, subscribers):
    subscription = subscribers(1)[0]

    response = client.put(
        f"/api/dashboard/subscriptions/{subscription.id}",
        headers=admin_headers,
        json={"status": "unsubscribed"},
    )

    assert response.json()["data"]["unsubscribedAt"] is not None
    resend = client.post(f"/api/dashboard/subscriptions/{subscription.id}/resend-welcome", headers=admin_headers)
    assert resend.status_code == 400


def test_product_catalog_campaign_needs_products(client: TestClient, admin_headers: dict, make_product):
    assert _campaign(client, admin_headers, type="product_catalog").status_code == 400
    assert _campaign(client, admin_headers, type="product_catalog", productIds=[999]).status_code == 400

    first = make_product(name="First")
    second = make_product(name="Second")
    response = _campaign(client, admin_headers, type="product_catalog", productIds=[second.id, first.id])

    assert response.status_code == 201
    products = response.json()["data"]["products"]
    assert [(p["name"], p["displayOrder"]) for p in products] == [("Second", 0), ("First", 1)]


def test_campaign_sends_once(
    client: TestClient, db_session: Session, admin_headers: dict, subscribers, sent_emails: list
):
    campaign_id = _campaign(client, admin_headers).json()["data"]["id"]
    assert client.post(f"/api/dashboard/campaigns/{campaign_id}/send", headers=admin_headers).status_code == 400

    subscribers(3)
    subscribers(1, status="bounced")
    response = client.post(f"/api/dashboard/campaigns/{campaign_id}/send", headers=admin_headers)

    data = response.json()["data"]
    assert data["status"] == "sent"
    assert data["recipientCount"] == 3
    assert data["failedCount"] == 0
    assert [name for name, _ in sent_emails] == ["send_campaign_email"] * 3

    again = client.post(f"/api/dashboard/campaigns/{campaign_id}/send", headers=admin_headers)
    assert again.status_code == 400
    assert again.json()["message"] == "Campaign has already been sent"
    assert db_session.get(NewsletterCampaign, campaign_id).sent_at is not None


def test_resend_password_reset_rotates_token(
    client: TestClient, db_session: Session, admin_headers: dict, make_user, sent_emails: list
):
    user = make_user(email="locked@example.com")

    response = client.post(f"/api/dashboard/users/{user.id}/resend-password-reset", headers=admin_headers)

    assert response.status_code == 200
    db_session.refresh(user)
    assert user.reset_token
    assert sent_emails == [("send_password_reset", (user.email, user.name, user.reset_token))]


def test_resend_order_confirmation_unknown_order(client: TestClient, admin_headers: dict):
    response = client.post("/api/dashboard/orders/4242/resend-confirmation", headers=admin_headers)

    assert response.status_code == 404
