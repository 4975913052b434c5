from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tirestore.models.category import Category


def test_admin_category_lifecycle(client: TestClient, admin_headers: dict):
    created = client.post(
        "/api/categories",
        headers=admin_headers,
        json={"name": "Winter Tires", "slug": "winter-tires", "sortOrder": 2},
    )
    assert created.status_code == 201
    category_id = created.json()["data"]["id"]

    assert client.post(
        "/api/categories", headers=admin_headers, json={"name": "Again", "slug": "winter-tires"}
    ).status_code == 409

    updated = client.put(f"/api/categories/{category_id}", headers=admin_headers, json={"name": "Snow Tires"})
    assert updated.json()["data"]["name"] == "Snow Tires"

    assert client.get("/api/categories/winter-tires").json()["data"]["name"] == "Snow Tires"
    assert client.delete(f"/api/categories/{category_id}", headers=admin_headers).status_code == 204
    assert client.get("/api/categories/winter-tires").status_code == 404


def test_listing_counts_products_and_hides_inactive(
    client: TestClient, db_session: Session, make_product
):
    summer = Category(name="Summer", slug="summer", sort_order=1)
    hidden = Category(name="Archive", slug="archive", is_active=False)
    db_session.add_all([summer, hidden])
    db_session.commit()
    for _ in range(2):
        product = make_product()
        product.categories = [summer]
    db_session.commit()

    data = client.get("/api/categories").json()["data"]

    assert [(c["slug"], c["productCount"]) for c in data] == [("summer", 2)]


def test_unknown_parent_is_404(client: TestClient, admin_headers: dict):
    response = client.post(
        "/api/categories", headers=admin_headers, json={"name": "Child", "slug": "child", "parentId": 99}
    )

    assert response.status_code == 404


def test_deleting_parent_orphans_children(client: TestClient, db_session: Session, admin_headers: dict):
    parent = Category(name="All Season", slug="all-season")
    db_session.add(parent)
    db_session.commit()
    child = Category(name="Touring", slug="touring", parent_id=parent.id)
    db_session.add(child)
    db_session.commit()

    client.delete(f"/api/categories/{parent.id}", headers=admin_headers)

    db_session.refresh(child)
    assert child.parent_id is None


def test_category_writes_need_admin(client: TestClient, user_headers: dict):
    response = client.post("/api/categories", headers=user_headers, json={"name": "Nope", "slug": "nope"})

    assert response.status_code == 403
