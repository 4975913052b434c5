from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

PASSWORD = "StrongPass1"


def _address(**overrides):
    body = {"type": "shipping", "street": "1 Tread Way", "city": "Austin", "state": "TX", "zipCode": "73301"}
    body.update(overrides)
    return body


def test_account_update_and_email_conflict(client: TestClient, make_user, headers_for):
    make_user(email="taken@example.com")
    headers = headers_for(make_user(email="me@example.com"))

    updated = client.put("/api/account", headers=headers, json={"name": "New Name", "phone": "+1 555 0100"})
    assert updated.json()["data"]["name"] == "New Name"

    assert client.put("/api/account", headers=headers, json={"email": "TAKEN@example.com"}).status_code == 409
    assert client.put("/api/account", headers=headers, json={}).status_code == 400


def test_change_password_checks_current(client: TestClient, user_headers: dict):
    wrong = client.post(
        "/api/account/change-password",
        headers=user_headers,
        json={"currentPassword": "Nope12345", "newPassword": "Fresh123A"},
    )
    assert wrong.status_code == 400

    ok = client.post(
        "/api/account/change-password",
        headers=user_headers,
        json={"currentPassword": PASSWORD, "newPassword": "Fresh123A"},
    )
    assert ok.status_code == 200
    login = client.post("/api/auth/login", json={"email": "driver@example.com", "password": "Fresh123A"})
    assert login.status_code == 200


def test_single_default_address_per_type(client: TestClient, user_headers: dict):
    first = client.post("/api/settings/addresses", headers=user_headers, json=_address(isDefault=True)).json()["data"]
    second = client.post(
        "/api/settings/addresses", headers=user_headers, json=_address(street="2 Rim Road", isDefault=True)
    ).json()["data"]
    client.post("/api/settings/addresses", headers=user_headers, json=_address(type="billing", isDefault=True))

    addresses = client.get("/api/settings/addresses", headers=user_headers).json()["data"]
    shipping_defaults = [a["id"] for a in addresses if a["type"] == "shipping" and a["isDefault"]]
    assert shipping_defaults == [second["id"]]

    default = client.get("/api/settings/addresses/default", headers=user_headers).json()["data"]
    assert default["street"] == "2 Rim Road"

    client.put(f"/api/settings/addresses/{first['id']}", headers=user_headers, json={"isDefault": True})
    default = client.get("/api/settings/addresses/default", headers=user_headers).json()["data"]
    assert default["id"] == first["id"]


def test_address_belongs_to_owner(client: TestClient, make_user, headers_for):
    owner = headers_for(make_user(email="owner@example.com"))
    other = headers_for(make_user(email="other@example.com"))
    address_id = client.post("/api/settings/addresses", headers=owner, json=_address()).json()["data"]["id"]

    assert client.delete(f"/api/settings/addresses/{address_id}", headers=other).status_code == 404
    assert client.delete(f"/api/settings/addresses/{address_id}", headers=owner).status_code == 204


def test_admin_manages_users(client: TestClient, db_session: Session, admin_user, admin_headers: dict, make_user):
    target = make_user(email="target@example.com", name="Target Person")

    listed = client.get("/api/users", headers=admin_headers, params={"search": "target"}).json()
    assert [u["email"] for u in listed["data"]] == ["target@example.com"]

    admins = client.get("/api/users", headers=admin_headers, params={"role": "admin"}).json()
    assert [u["email"] for u in admins["data"]] == ["admin@example.com"]

    response = client.put(f"/api/users/{target.id}", headers=admin_headers, json={"isActive": False})
    assert response.json()["data"]["isActive"] is False
    db_session.refresh(target)
    assert target.session_version == 1

    stats = client.get("/api/users/stats/summary", headers=admin_headers).json()["data"]
    assert stats == {"total": 2, "active": 1, "admins": 1}


def test_admin_cannot_demote_self(client: TestClient, admin_user, admin_headers: dict):
    response = client.put(f"/api/users/{admin_user.id}", headers=admin_headers, json={"role": "user"})

    assert response.status_code == 400
