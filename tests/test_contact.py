from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tirestore.models.contact import ContactMessage

MESSAGE = {
    "name": "Pat Driver",
    "email": "Pat@Example.com",
    "subject": "Quote for four tires",
    "message": "Please send a quote for four 205/55R16 tires.",
    "inquiryType": "quote",
}


def test_submit_contact_queues_both_emails(client: TestClient, db_session: Session, sent_emails: list):
    response = client.post("/api/contact", json=MESSAGE)

    assert response.status_code == 201
    contact_id = response.json()["data"]["id"]
    assert response.json()["data"]["status"] == "pending"

    stored = db_session.get(ContactMessage, contact_id)
    assert stored.email == "pat@example.com"
    assert stored.inquiry_type == "quote"
    assert sent_emails == [
        ("send_contact_confirmation", (contact_id,)),
        ("send_contact_admin_notification", (contact_id,)),
    ]


def test_contact_markup_is_stripped(client: TestClient, db_session: Session):
    body = dict(MESSAGE, message="<b>Bold</b> request for winter tires please")

    contact_id = client.post("/api/contact", json=body).json()["data"]["id"]

    assert db_session.get(ContactMessage, contact_id).message == "Bold request for winter tires please"


def test_contact_validation_errors_list_fields(client: TestClient):
    response = client.post("/api/contact", json=dict(MESSAGE, subject="Hi", inquiryType="gossip"))

    assert response.status_code == 422
    fields = {error["field"] for error in response.json()["errors"]}
    assert {"subject", "inquiryType"} <= fields


def test_store_info_and_faqs_are_public(client: TestClient):
    info = client.get("/api/contact/info").json()["data"]
    faqs = client.get("/api/contact/faqs").json()["data"]

    assert info["businessHours"]["sunday"] == {"closed": True}
    assert "Tire Installation" in info["services"]
    assert len(faqs) == 5


def test_newsletter_subscribe_duplicate_and_reactivate(client: TestClient, sent_emails: list):
    created = client.post("/api/contact/newsletter", json={"email": "reader@example.com", "name": "Reader"})
    assert created.status_code == 201
    assert created.json()["data"]["status"] == "active"
    assert sent_emails == [("send_newsletter_welcome", ("reader@example.com", "Reader"))]

    duplicate = client.post("/api/contact/newsletter", json={"email": "reader@example.com"})
    assert duplicate.status_code == 400

    assert client.post("/api/contact/unsubscribe", json={"email": "reader@example.com"}).status_code == 200

    reactivated = client.post("/api/contact/newsletter", json={"email": "reader@example.com"})
    assert reactivated.status_code == 200
    assert reactivated.json()["message"] == "Successfully reactivated your newsletter subscription!"


def test_unsubscribe_unknown_email_is_404(client: TestClient):
    assert client.post("/api/contact/unsubscribe", json={"email": "ghost@example.com"}).status_code == 404


def test_admin_lists_and_updates_messages(client: TestClient, admin_headers: dict, user_headers: dict):
    client.post("/api/contact", json=MESSAGE)
    other = client.post("/api/contact", json=dict(MESSAGE, email="sam@example.com")).json()["data"]["id"]

    updated = client.put(
        f"/api/contact/messages/{other}",
        headers=admin_headers,
        json={"status": "resolved", "adminResponse": "Quote sent"},
    )
    assert updated.json()["data"]["status"] == "resolved"

    pending = client.get("/api/contact/messages", headers=admin_headers, params={"status": "pending"}).json()
    assert pending["meta"]["pagination"]["total"] == 1

    assert client.get("/api/contact/messages", headers=user_headers).status_code == 403
