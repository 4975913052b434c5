from fastapi.testclient import TestClient


def test_health_reports_environment(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["environment"] == "development"


def test_security_and_tracing_headers(client: TestClient):
    response = client.get("/health", headers={"X-Correlation-ID": "trace-123"})

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Correlation-ID"] == "trace-123"
    assert float(response.headers["X-Process-Time"]) >= 0


def test_not_found_uses_error_envelope(client: TestClient):
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    payload = response.json()
    assert payload["success"] is False
    assert payload["data"] is None
    assert payload["timestamp"]


def test_active_banners_are_public_and_sorted(client: TestClient, admin_headers: dict):
    client.post("/api/banners", headers=admin_headers, json={"type": "image", "src": "/b.jpg", "sortOrder": 2})
    client.post("/api/banners", headers=admin_headers, json={"type": "video", "src": "/a.mp4", "sortOrder": 1})
    hidden = client.post(
        "/api/banners", headers=admin_headers, json={"type": "image", "src": "/c.jpg", "isActive": False}
    ).json()["data"]

    public = client.get("/api/banners").json()["data"]
    assert [(b["type"], b["src"]) for b in public] == [("video", "/a.mp4"), ("image", "/b.jpg")]
    assert len(client.get("/api/banners/all", headers=admin_headers).json()["data"]) == 3

    client.put(f"/api/banners/{hidden['id']}", headers=admin_headers, json={"isActive": True, "sortOrder": 0})
    assert client.get("/api/banners").json()["data"][0]["src"] == "/c.jpg"


def test_banner_writes_need_admin(client: TestClient, user_headers: dict):
    response = client.post("/api/banners", headers=user_headers, json={"type": "image", "src": "/x.jpg"})

    assert response.status_code == 403


def test_production_requires_csrf_header(client: TestClient, monkeypatch):
    from tirestore.core.config import settings

    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    body = {"email": "reader@example.com"}

    rejected = client.post("/api/contact/newsletter", json=body)
    assert rejected.status_code == 403
    assert rejected.json()["message"] == "CSRF validation failed"

    client.cookies.set("csrf_token", "abc123")
    accepted = client.post("/api/contact/newsletter", json=body, headers={"X-CSRF-Token": "abc123"})
    assert accepted.status_code == 201
