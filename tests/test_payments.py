import json
from decimal import Decimal

import pytest
import stripe
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from tirestore.models.order import Order
from tirestore.services.payment_service import PaymentService

SHIPPING = {"line1": "1 Tread Way", "city": "Austin", "postalCode": "73301", "country": "US"}


@pytest.fixture
def fake_stripe(monkeypatch):
    """Capture PaymentIntent.create calls and serve intents from a dict."""
    state = {"created": [], "intents": {}}

    def create(**kwargs):
        intent_id = f"pi_test_{len(state['created']) + 1}"
        intent = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret",
            "amount": kwargs["amount"],
            "status": "requires_payment_method",
            "metadata": kwargs["metadata"],
            "receipt_email": kwargs.get("receipt_email"),
        }
        state["created"].append(kwargs)
        state["intents"][intent_id] = intent
        return intent

    def retrieve(intent_id, **kwargs):
        return state["intents"][intent_id]

    def construct_event(payload, signature, secret):
        if signature != "valid":
            raise stripe.SignatureVerificationError("bad signature", signature)
        return json.loads(payload)

    monkeypatch.setattr(stripe.PaymentIntent, "create", create)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)
    monkeypatch.setattr(stripe.Webhook, "construct_event", construct_event)
    return state


def _checkout(client: TestClient, cart, **extra):
    body = {"cart": cart, "userEmail": "buyer@example.com", "userName": "Buyer", "shippingAddress": SHIPPING}
    body.update(extra)
    return client.post("/api/create-payment-intent", json=body)


def _succeed(fake_stripe, intent_id):
    intent = fake_stripe["intents"][intent_id]
    intent["status"] = "succeeded"
    return intent


def _webhook(client: TestClient, event_type: str, intent: dict, signature: str = "valid"):
    event = {"id": f"evt_{intent['id']}", "type": event_type, "data": {"object": intent}}
    return client.post(
        "/api/webhook/stripe",
        content=json.dumps(event),
        headers={"stripe-signature": signature, "content-type": "application/json"},
    )


def test_intent_is_priced_from_catalog(client: TestClient, make_product, fake_stripe):
    first = make_product(price=Decimal("100.00"))
    second = make_product(price=Decimal("49.99"))

    response = _checkout(
        client,
        [{"id": first.id, "quantity": 2, "price": 1}, {"id": second.id, "quantity": 1}],
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["amount"] == 24999
    assert data["clientSecret"] == "pi_test_1_secret"
    metadata = fake_stripe["created"][0]["metadata"]
    assert json.loads(metadata["cart"]) == [[first.id, 2], [second.id, 1]]
    assert json.loads(metadata["shippingAddress"]) == SHIPPING


def test_empty_cart_is_rejected(client: TestClient, fake_stripe):
    response = _checkout(client, [])

    assert response.status_code == 400
    assert fake_stripe["created"] == []


def test_unpublished_product_cannot_be_bought(client: TestClient, make_product, fake_stripe):
    draft = make_product(status="draft")

    response = _checkout(client, [{"id": draft.id, "quantity": 1}])

    assert response.status_code == 400
    assert response.json()["errors"][0]["productIds"] == [draft.id]


def test_quantity_beyond_stock_is_rejected(client: TestClient, make_product, fake_stripe):
    product = make_product(stock=1)

    response = _checkout(client, [{"id": product.id, "quantity": 3}])

    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "insufficient_stock"


def test_webhook_creates_order_once(
    client: TestClient, db_session: Session, make_product, fake_stripe, sent_emails: list
):
    product = make_product(price=Decimal("80.00"), stock=10)
    intent_id = _checkout(client, [{"id": product.id, "quantity": 2}]).json()["data"]["paymentIntentId"]
    intent = _succeed(fake_stripe, intent_id)

    assert _webhook(client, "payment_intent.succeeded", intent).json() == {"received": True}
    assert _webhook(client, "payment_intent.succeeded", intent).status_code == 200

    orders = db_session.query(Order).filter(Order.payment_intent_id == intent_id).all()
    assert len(orders) == 1
    order = orders[0]
    assert order.payment_status == "paid"
    assert order.total == Decimal("160.00")
    assert order.user_email == "buyer@example.com"
    assert [(item.product_id, item.quantity) for item in order.items] == [(product.id, 2)]
    db_session.refresh(product)
    assert product.stock == 8
    assert sent_emails == [("send_order_confirmation", (order.id,))]


def test_create_order_after_webhook_returns_existing(client: TestClient, make_product, fake_stripe):
    product = make_product()
    cart = [{"id": product.id, "quantity": 1}]
    intent_id = _checkout(client, cart).json()["data"]["paymentIntentId"]
    _webhook(client, "payment_intent.succeeded", _succeed(fake_stripe, intent_id))

    response = client.post(
        "/api/create-order",
        json={
            "paymentIntentId": intent_id,
            "cart": cart,
            "userEmail": "buyer@example.com",
            "userName": "Buyer",
            "shippingAddress": SHIPPING,
        },
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Order already exists"
    assert response.json()["data"]["paymentIntentId"] == intent_id


def test_create_order_requires_succeeded_intent(client: TestClient, make_product, fake_stripe):
    product = make_product()
    cart = [{"id": product.id, "quantity": 1}]
    intent_id = _checkout(client, cart).json()["data"]["paymentIntentId"]

    response = client.post(
        "/api/create-order",
        json={
            "paymentIntentId": intent_id,
            "cart": cart,
            "userEmail": "buyer@example.com",
            "userName": "Buyer",
            "shippingAddress": SHIPPING,
        },
    )

    assert response.status_code == 400
    assert response.json()["errors"][0]["paymentStatus"] == "requires_payment_method"


def test_create_order_materializes_for_signed_in_user(
    client: TestClient, make_product, fake_stripe, user_headers: dict, sent_emails: list
):
    product = make_product()
    cart = [{"id": product.id, "quantity": 1}]
    intent_id = _checkout(client, cart).json()["data"]["paymentIntentId"]
    _succeed(fake_stripe, intent_id)

    response = client.post(
        "/api/create-order",
        headers=user_headers,
        json={
            "paymentIntentId": intent_id,
            "cart": cart,
            "userEmail": "buyer@example.com",
            "userName": "Buyer",
            "shippingAddress": SHIPPING,
        },
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["orderNumber"].startswith("ORD-")
    assert data["status"] == "processing"
    assert [name for name, _ in sent_emails] == ["send_order_confirmation"]


def test_payment_failed_marks_existing_order(client: TestClient, db_session: Session, make_product, fake_stripe):
    product = make_product()
    intent_id = _checkout(client, [{"id": product.id, "quantity": 1}]).json()["data"]["paymentIntentId"]
    intent = _succeed(fake_stripe, intent_id)
    _webhook(client, "payment_intent.succeeded", intent)

    _webhook(client, "payment_intent.payment_failed", intent)

    order = db_session.query(Order).filter(Order.payment_intent_id == intent_id).one()
    db_session.refresh(order)
    assert order.payment_status == "failed"


def test_webhook_rejects_bad_signature(client: TestClient, fake_stripe):
    response = _webhook(client, "payment_intent.succeeded", {"id": "pi_forged"}, signature="forged")

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid webhook signature"


def _paid_intent(intent_id: str, product_id: int, quantity: int, unit_cents: int = 5000) -> dict:
    return {
        "id": intent_id,
        "amount": unit_cents * quantity,
        "status": "succeeded",
        "metadata": {"cart": json.dumps([[product_id, quantity]]), "userEmail": "buyer@example.com"},
    }


def test_concurrent_orders_both_decrement_stock(db_session: Session, make_product, sent_emails: list):
    product = make_product(price=Decimal("50.00"), stock=20)
    assert product.stock == 20  # this session now holds a copy loaded before the other order

    other_session = sessionmaker(bind=db_session.get_bind())()
    try:
        PaymentService.materialize_order(other_session, _paid_intent("pi_other", product.id, 3))
    finally:
        other_session.close()

    PaymentService.materialize_order(db_session, _paid_intent("pi_this", product.id, 5))

    db_session.refresh(product)
    assert product.stock == 12


def test_oversold_order_is_kept_and_stock_floors_at_zero(db_session: Session, make_product, sent_emails: list):
    product = make_product(price=Decimal("50.00"), stock=1)

    order, created = PaymentService.materialize_order(db_session, _paid_intent("pi_short", product.id, 3))

    assert created is True
    assert [(item.product_id, item.quantity) for item in order.items] == [(product.id, 3)]
    db_session.refresh(product)
    assert product.stock == 0
