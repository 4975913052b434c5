from fastapi.testclient import TestClient

from tirestore.core.config import settings
from tirestore.core.login_guard import get_login_guard
from tirestore.core.rate_limiter import active_limits


def _block(email: str, ip_address: str = "203.0.113.7"):
    guard = get_login_guard()
    for _ in range(6):
        guard.record_failure(email, ip_address)


def test_security_blocks_listing_and_status(client: TestClient, admin_headers: dict):
    _block("victim@example.com")
    get_login_guard().record_failure("typo@example.com", "203.0.113.8")

    payload = client.get("/api/admin/security-blocks", headers=admin_headers).json()
    assert payload["meta"] == {"total": 2, "blocked": 1}

    status = client.get("/api/admin/security-status/Victim@Example.com", headers=admin_headers).json()["data"]
    assert status["isBlocked"] is True
    assert status["failedAttempts"] == 6
    assert status["attemptsRemaining"] == 0


def test_clear_block_for_one_email(client: TestClient, admin_headers: dict):
    _block("victim@example.com")
    _block("other@example.com")

    response = client.post("/api/admin/clear-security-block", headers=admin_headers, json={"email": "victim@example.com"})

    assert response.json()["data"] == {"cleared": 1, "type": "email", "email": "victim@example.com"}
    assert get_login_guard().status("victim@example.com")["isBlocked"] is False
    assert get_login_guard().status("other@example.com")["isBlocked"] is True


def test_emergency_clear_requires_admin(client: TestClient, admin_headers: dict, user_headers: dict):
    _block("victim@example.com")

    assert client.post("/api/admin/emergency-clear-blocks").status_code == 401
    assert client.post("/api/admin/emergency-clear-blocks", headers=user_headers).status_code == 403

    response = client.post("/api/admin/emergency-clear-blocks", headers=admin_headers)
    assert response.json()["data"]["cleared"] == 1
    assert get_login_guard().list_blocks() == []


def test_settings_round_trip_with_types(client: TestClient, admin_headers: dict):
    defaults = client.get("/api/admin/settings", headers=admin_headers).json()["data"]
    assert defaults["maintenance_mode"] is False

    response = client.put(
        "/api/admin/settings",
        headers=admin_headers,
        json={"maintenance_mode": True, "low_stock_threshold": 5, "site_name": "Tread Shop"},
    )

    data = response.json()["data"]
    assert data["maintenance_mode"] is True
    assert data["low_stock_threshold"] == 5
    assert data["site_name"] == "Tread Shop"
    assert client.get("/api/admin/settings", headers=admin_headers).json()["data"]["site_name"] == "Tread Shop"


def test_settings_reject_empty_and_rate_limit_keys(client: TestClient, admin_headers: dict):
    assert client.put("/api/admin/settings", headers=admin_headers, json={}).status_code == 400
    rejected = client.put("/api/admin/settings", headers=admin_headers, json={"rate_limit_auth": {"max": 1}})
    assert rejected.status_code == 400


def test_test_email_goes_to_admin(client: TestClient, admin_headers: dict, sent_emails: list):
    response = client.post("/api/admin/settings/test-email", headers=admin_headers)

    assert response.status_code == 200
    assert [(name, args[0]) for name, args in sent_emails] == [("send_email_task", "admin@example.com")]


def test_test_email_without_smtp_host(client: TestClient, admin_headers: dict, monkeypatch):
    monkeypatch.setattr(settings, "SMTP_HOST", "")

    response = client.post("/api/admin/settings/test-email", headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "SMTP is not configured"


def test_update_rate_limits_applies_immediately(client: TestClient, admin_headers: dict):
    response = client.put(
        "/api/admin/rate-limits",
        headers=admin_headers,
        json={"payment": {"windowMs": 60000, "max": 2}},
    )

    assert response.status_code == 200
    assert response.json()["data"]["payment"] == {"windowMs": 60000, "max": 2}
    assert active_limits()["payment"] == {"windowMs": 60000, "max": 2}

    statuses = [
        client.post("/api/create-payment-intent", json={"cart": [], "userEmail": "a@example.com",
                                                        "userName": "A", "shippingAddress": {}}).status_code
        for _ in range(3)
    ]
    assert statuses == [400, 400, 429]


def test_rate_limit_bounds_and_unknown_groups(client: TestClient, admin_headers: dict):
    too_small = client.put("/api/admin/rate-limits", headers=admin_headers, json={"auth": {"windowMs": 10, "max": 5}})
    unknown = client.put(
        "/api/admin/rate-limits", headers=admin_headers, json={"search": {"windowMs": 60000, "max": 5}}
    )

    assert too_small.status_code == 422
    assert unknown.status_code == 400


def test_reset_rate_limits_restores_defaults(client: TestClient, admin_headers: dict):
    client.put("/api/admin/rate-limits", headers=admin_headers, json={"auth": {"windowMs": 60000, "max": 3}})

    response = client.post("/api/admin/rate-limits/reset", headers=admin_headers)

    assert response.json()["data"]["auth"] == {"windowMs": 900000, "max": 30}
    stats = client.get("/api/admin/rate-limits/stats", headers=admin_headers).json()["data"]
    assert stats["activeLimits"]["auth"]["max"] == 30
    assert stats["loginGuard"]["backend"] == "memory"
