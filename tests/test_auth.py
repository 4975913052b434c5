from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tirestore.core.login_guard import get_login_guard
from tirestore.core.security import decode_token
from tirestore.models.user import User

PASSWORD = "StrongPass1"


def _login(client: TestClient, email: str, password: str = PASSWORD, **extra):
    return client.post("/api/auth/login", json={"email": email, "password": password, **extra})


def test_register_queues_verification_email(client: TestClient, db_session: Session, sent_emails: list):
    response = client.post(
        "/api/auth/register",
        json={"name": "New Driver", "email": "New@Example.com", "password": PASSWORD},
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["data"]["email"] == "new@example.com"
    assert payload["data"]["emailVerified"] is False

    user = db_session.query(User).filter(User.email == "new@example.com").one()
    assert sent_emails == [("send_verification_email", (user.email, user.name, user.verification_token))]


def test_register_duplicate_email_is_conflict(client: TestClient, make_user):
    make_user(email="taken@example.com")

    response = client.post(
        "/api/auth/register",
        json={"name": "Someone", "email": "taken@example.com", "password": PASSWORD},
    )

    assert response.status_code == 409
    assert response.json()["success"] is False


def test_register_rejects_weak_password(client: TestClient):
    response = client.post(
        "/api/auth/register",
        json={"name": "Weak", "email": "weak@example.com", "password": "short"},
    )

    assert response.status_code == 422


def test_verify_email_then_login(client: TestClient, db_session: Session):
    client.post("/api/auth/register", json={"name": "Verify Me", "email": "verify@example.com", "password": PASSWORD})
    user = db_session.query(User).filter(User.email == "verify@example.com").one()

    assert _login(client, "verify@example.com").status_code == 401

    bad = client.get("/api/auth/verify", params={"email": user.email, "token": "wrong"})
    assert bad.status_code == 400
    assert bad.json()["message"] == "Invalid token"

    ok = client.get("/api/auth/verify", params={"email": user.email, "token": user.verification_token})
    assert ok.status_code == 200

    response = _login(client, "verify@example.com")
    assert response.status_code == 200
    data = response.json()["data"]
    assert decode_token(data["accessToken"])["sub"] == str(user.id)
    assert response.cookies.get("access_token") is not None
    assert response.cookies.get("refresh_token") is not None
    assert response.cookies.get("csrf_token") is not None


def test_unverified_login_reports_code_or_resends(client: TestClient, make_user, sent_emails: list):
    make_user(email="pending@example.com", verified=False)

    rejected = _login(client, "pending@example.com")
    assert rejected.status_code == 401
    assert rejected.json()["errors"][0]["code"] == "email_not_verified"

    resent = _login(client, "pending@example.com", resendVerification=True)
    assert resent.status_code == 200
    assert resent.json()["data"] == {"unverified": True, "resent": True}
    assert [name for name, _ in sent_emails] == ["send_verification_email"]


def test_inactive_account_is_forbidden(client: TestClient, make_user):
    make_user(email="inactive@example.com", active=False)

    assert _login(client, "inactive@example.com").status_code == 403


def test_failed_logins_warn_then_block(client: TestClient, make_user):
    make_user(email="target@example.com")

    statuses = []
    for _ in range(5):
        response = _login(client, "target@example.com", "WrongPass1")
        statuses.append(response.status_code)
    assert statuses == [401] * 5
    third_to_fifth = response.json()["errors"][0]
    assert third_to_fifth["warning"] == "5 failed attempts detected. 1 attempts remaining before temporary block."

    sixth = _login(client, "target@example.com", "WrongPass1")
    assert sixth.status_code == 401
    assert sixth.json()["errors"][0]["blocked"] is True

    # Even the right password is refused while the pair is blocked
    blocked = _login(client, "target@example.com")
    assert blocked.status_code == 429
    detail = blocked.json()["errors"][0]
    assert detail["code"] == "account_blocked"
    assert detail["blockedUntil"]
    assert detail["supportEmail"]


def test_successful_login_clears_failed_attempts(client: TestClient, make_user):
    make_user(email="recover@example.com")
    for _ in range(3):
        _login(client, "recover@example.com", "WrongPass1")

    response = _login(client, "recover@example.com")

    assert response.status_code == 200
    assert response.json()["data"]["securityWarning"].startswith("Warning: 3 failed login attempts")
    assert get_login_guard().status("recover@example.com")["failedAttempts"] == 0


def test_bot_user_agent_is_flagged_and_blocked(client: TestClient, make_user):
    make_user(email="bot@example.com")

    response = client.post(
        "/api/auth/login",
        json={"email": "bot@example.com", "password": PASSWORD},
        headers={"User-Agent": "python-crawler-bot", "Accept": ""},
    )

    assert response.status_code == 429
    assert response.json()["errors"][0]["code"] == "suspicious_activity"
    assert get_login_guard().status("bot@example.com")["isBlocked"] is True


def test_suspicion_score_counts_signals():
    score = get_login_guard().suspicion_score(
        {"user-agent": "Googlebot", "accept": "text/html"},
        "not-an-email",
        "<script>alert(1)</script>",
    )

    # bot agent, script password, malformed email, missing accept-language
    assert score == 4


def test_me_requires_token(client: TestClient, user_headers: dict):
    assert client.get("/api/auth/me").status_code == 401

    response = client.get("/api/auth/me", headers=user_headers)
    assert response.status_code == 200
    assert response.json()["data"]["email"] == "driver@example.com"


def test_logout_revokes_access_token(client: TestClient, make_user):
    make_user(email="leaving@example.com")
    token = _login(client, "leaving@example.com").json()["data"]["accessToken"]
    client.cookies.clear()

    assert client.post("/api/auth/logout", headers={"Authorization": f"Bearer {token}"}).status_code == 200

    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["message"] == "Token has been revoked"


def test_refresh_issues_new_access_token(client: TestClient, make_user):
    make_user(email="refresh@example.com")
    refresh = _login(client, "refresh@example.com").json()["data"]["refreshToken"]
    client.cookies.clear()

    response = client.post("/api/auth/refresh", json={"refreshToken": refresh})

    assert response.status_code == 200
    assert decode_token(response.json()["data"]["accessToken"])["type"] == "access"


def test_password_reset_flow_invalidates_sessions(
    client: TestClient, db_session: Session, make_user, headers_for, sent_emails: list
):
    user = make_user(email="forgot@example.com")
    old_headers = headers_for(user)

    unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    known = client.post("/api/auth/forgot-password", json={"email": "forgot@example.com"})
    assert unknown.json()["message"] == known.json()["message"]

    db_session.refresh(user)
    assert sent_emails == [("send_password_reset", (user.email, user.name, user.reset_token))]

    response = client.post(
        "/api/auth/reset-password",
        json={"email": user.email, "token": user.reset_token, "password": "NewStrong2"},
    )
    assert response.status_code == 200

    assert client.get("/api/auth/me", headers=old_headers).status_code == 401
    assert _login(client, user.email, "NewStrong2").status_code == 200


def test_reset_password_with_wrong_token(client: TestClient, make_user):
    make_user(email="reset@example.com")

    response = client.post(
        "/api/auth/reset-password",
        json={"email": "reset@example.com", "token": "nope", "password": "NewStrong2"},
    )

    assert response.status_code == 400


def test_expired_reset_token_is_rejected(client: TestClient, db_session: Session, make_user):
    user = make_user(email="late@example.com")
    client.post("/api/auth/forgot-password", json={"email": "late@example.com"})
    db_session.refresh(user)
    user.reset_token_expires_at = datetime.utcnow() - timedelta(minutes=1)
    db_session.commit()

    response = client.post(
        "/api/auth/reset-password",
        json={"email": user.email, "token": user.reset_token, "password": "NewStrong2"},
    )

    assert response.status_code == 400


def test_csrf_token_matches_cookie(client: TestClient):
    response = client.get("/api/auth/csrf-token")

    assert response.status_code == 200
    assert response.json()["data"]["csrfToken"] == response.cookies.get("csrf_token")
