from datetime import datetime, timedelta
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tirestore.models.category import Category
from tirestore.services.product_search import fuzzy_match, match_term


def _seed_catalog(make_product):
    make_product(brand="Michelin", name="Pilot Sport 4", season_type="summer", price=Decimal("150.00"))
    make_product(brand="Michelin", name="Alpin 6", season_type="winter", price=Decimal("120.00"))
    make_product(brand="Continental", name="WinterContact TS 870", season_type="winter", price=Decimal("110.00"))
    make_product(brand="Bridgestone", name="Turanza T005", season_type="summer", price=Decimal("95.00"))
    make_product(brand="Pirelli", name="Cinturato P7", season_type="all-season", price=Decimal("130.00"), status="draft")


def test_list_products_returns_envelope_and_filter_facets(client: TestClient, make_product):
    _seed_catalog(make_product)

    response = client.get("/api/products")

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["errors"] is None
    assert payload["meta"]["pagination"]["total"] == 5
    facets = payload["meta"]["filters"]
    assert facets["brands"] == ["Bridgestone", "Continental", "Michelin", "Pirelli"]
    assert facets["statuses"] == ["draft", "published"]
    assert facets["priceRange"] == {"min": 95.0, "max": 150.0}


def test_filters_narrow_to_rows_satisfying_every_predicate(client: TestClient, make_product):
    _seed_catalog(make_product)

    response = client.get(
        "/api/products",
        params={"brand": ["Michelin", "Continental"], "seasonType": "winter", "minPrice": "100", "maxPrice": "115"},
    )

    items = response.json()["data"]
    assert [item["name"] for item in items] == ["WinterContact TS 870"]
    for item in items:
        assert item["brand"] in {"Michelin", "Continental"}
        assert item["seasonType"] == "winter"
        assert 100 <= item["price"] <= 115


def test_price_bounds_are_inclusive(client: TestClient, make_product):
    _seed_catalog(make_product)

    response = client.get("/api/products", params={"minPrice": "95", "maxPrice": "120"})

    prices = sorted(item["price"] for item in response.json()["data"])
    assert prices == [95.0, 110.0, 120.0]


def test_all_sentinel_disables_filter(client: TestClient, make_product):
    _seed_catalog(make_product)

    response = client.get("/api/products", params={"brand": "all", "status": "all"})

    assert response.json()["meta"]["pagination"]["total"] == 5


def test_second_page_returns_rows_eleven_to_twenty(client: TestClient, make_product):
    for index in range(25):
        make_product(name=f"Eco {index:02d}")

    first = client.get("/api/products", params={"sortBy": "name", "sortOrder": "asc", "limit": 10}).json()
    second = client.get(
        "/api/products", params={"sortBy": "name", "sortOrder": "asc", "limit": 10, "page": 2}
    ).json()

    assert [item["name"] for item in first["data"]] == [f"Eco {i:02d}" for i in range(10)]
    assert [item["name"] for item in second["data"]] == [f"Eco {i:02d}" for i in range(10, 20)]
    pagination = second["meta"]["pagination"]
    assert pagination == {
        "page": 2,
        "limit": 10,
        "total": 25,
        "totalPages": 3,
        "hasNext": True,
        "hasPrev": True,
    }


def test_unknown_sort_falls_back_to_newest_first(client: TestClient, make_product):
    now = datetime.utcnow()
    make_product(name="Oldest", created_at=now - timedelta(days=3))
    make_product(name="Newest", created_at=now)
    make_product(name="Middle", created_at=now - timedelta(days=1))

    response = client.get("/api/products", params={"sortBy": "password_hash"})

    assert [item["name"] for item in response.json()["data"]] == ["Newest", "Middle", "Oldest"]


def test_unknown_category_returns_no_products(client: TestClient, make_product):
    _seed_catalog(make_product)

    response = client.get("/api/products", params={"category": "does-not-exist"})

    assert response.status_code == 200
    assert response.json()["data"] == []
    assert response.json()["meta"]["pagination"]["total"] == 0


def test_category_filter_matches_name_or_slug(client: TestClient, db_session: Session, make_product):
    winter = Category(name="Winter Tires", slug="winter-tires")
    db_session.add(winter)
    db_session.commit()
    tagged = make_product(name="Alpin 6")
    tagged.categories = [winter]
    db_session.commit()
    make_product(name="Pilot Sport 4")

    by_slug = client.get("/api/products", params={"category": "winter-tires"}).json()
    by_name = client.get("/api/products", params={"category": "Winter Tires"}).json()

    assert [p["name"] for p in by_slug["data"]] == ["Alpin 6"]
    assert [p["name"] for p in by_name["data"]] == ["Alpin 6"]
    assert by_slug["data"][0]["categoryIds"] == [winter.id]


def test_short_search_term_is_ignored(client: TestClient, make_product):
    _seed_catalog(make_product)

    unfiltered = client.get("/api/products", params={"brand": "Michelin"}).json()
    searched = client.get("/api/products", params={"brand": "Michelin", "search": "x"}).json()

    assert searched["meta"]["pagination"]["total"] == unfiltered["meta"]["pagination"]["total"] == 2


def test_search_tolerates_typos_and_counts_matches(client: TestClient, make_product):
    _seed_catalog(make_product)

    response = client.get("/api/products", params={"search": "Bridgstone"})

    payload = response.json()
    assert payload["data"][0]["brand"] == "Bridgestone"
    assert payload["meta"]["pagination"]["total"] == len(payload["data"])


def test_search_without_matches_returns_empty_list(client: TestClient, make_product):
    _seed_catalog(make_product)

    response = client.get("/api/products", params={"search": "qqqqzzzzxxxx"})

    assert response.status_code == 200
    assert response.json()["data"] == []
    assert response.json()["meta"]["pagination"]["total"] == 0


def test_malformed_price_is_a_validation_error(client: TestClient):
    response = client.get("/api/products", params={"minPrice": "cheap"})

    assert response.status_code == 422
    payload = response.json()
    assert payload["success"] is False
    assert payload["message"] == "Validation failed"


def test_quick_search_only_returns_published_products(client: TestClient, make_product):
    _seed_catalog(make_product)

    response = client.get("/api/products/search", params={"q": "Cinturato"})

    payload = response.json()
    assert "Cinturato P7" not in [p["name"] for p in payload["data"]]
    assert payload["meta"]["count"] == len(payload["data"])


def test_quick_search_single_character_uses_substring(client: TestClient, make_product):
    _seed_catalog(make_product)

    response = client.get("/api/products/search", params={"q": "T", "brand": "Bridgestone"})

    names = [p["name"] for p in response.json()["data"]]
    assert names == ["Turanza T005"]


def test_brands_lists_published_counts(client: TestClient, make_product):
    _seed_catalog(make_product)

    response = client.get("/api/products/brands")

    assert response.json()["data"] == [
        {"brand": "Bridgestone", "count": 1},
        {"brand": "Continental", "count": 1},
        {"brand": "Michelin", "count": 2},
    ]


def test_on_sale_respects_sale_window(client: TestClient, make_product):
    now = datetime.utcnow()
    make_product(name="Current Deal", price=Decimal("80"), compare_price=Decimal("100"))
    make_product(
        name="Expired Deal",
        price=Decimal("80"),
        compare_price=Decimal("100"),
        sale_end_date=now - timedelta(days=1),
    )
    make_product(name="Full Price", price=Decimal("80"))

    response = client.get("/api/products/on-sale")

    items = response.json()["data"]
    assert [item["name"] for item in items] == ["Current Deal"]
    assert items[0]["isOnSale"] is True


def test_category_products_unknown_slug_is_404(client: TestClient):
    response = client.get("/api/products/categories/nope")

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_product_detail_and_related(client: TestClient, make_product):
    product = make_product(brand="Michelin", image="https://cdn.example.test/pilot.jpg")
    make_product(brand="Michelin", size="225/45R17")
    make_product(brand="Nokian", model="Hakkapeliitta", size="195/65R15")

    detail = client.get(f"/api/products/{product.id}").json()["data"]
    related = client.get(f"/api/products/{product.id}/related").json()["data"]

    assert detail["images"][0]["imageUrl"] == "https://cdn.example.test/pilot.jpg"
    assert detail["images"][0]["isPrimary"] is True
    assert [p["brand"] for p in related] == ["Michelin"]


def test_missing_product_is_404(client: TestClient):
    response = client.get("/api/products/9999")

    assert response.status_code == 404
    assert response.json()["message"] == "Product not found"


def test_admin_creates_product_with_composed_size_and_sku(client: TestClient, admin_headers: dict):
    response = client.post(
        "/api/products",
        headers=admin_headers,
        json={
            "name": "Pilot Sport 5",
            "brand": "Michelin",
            "model": "Pilot",
            "tireWidth": "225",
            "aspectRatio": "40",
            "rimDiameter": "18",
            "price": "189.90",
            "stock": 12,
            "status": "published",
        },
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["size"] == "225/40R18"
    assert data["sku"] == "MIC-PIL-225-40R18"
    assert data["slug"] == "michelin-pilot-sport-5-225-40r18"


def test_duplicate_sku_is_conflict(client: TestClient, admin_headers: dict, make_product):
    make_product(sku="DUP-001")

    response = client.post(
        "/api/products",
        headers=admin_headers,
        json={"name": "Copy", "brand": "Michelin", "model": "Copy", "size": "205/55R16", "sku": "DUP-001", "price": "1"},
    )

    assert response.status_code == 409


def test_non_admin_cannot_create_products(client: TestClient, user_headers: dict):
    response = client.post(
        "/api/products",
        headers=user_headers,
        json={"name": "Nope", "brand": "Michelin", "model": "Nope", "size": "205/55R16", "price": "1"},
    )

    assert response.status_code == 403


def test_admin_deletes_product(client: TestClient, admin_headers: dict, make_product):
    product = make_product()

    response = client.delete(f"/api/products/{product.id}", headers=admin_headers)

    assert response.status_code == 204
    assert client.get(f"/api/products/{product.id}").status_code == 404


def test_symbol_only_term_falls_back_to_substring_match():
    candidates = [(1, "Grip+++ Pro Michelin"), (2, "Pilot Sport 4 Michelin")]

    assert fuzzy_match("+++", candidates, 0.3) == []
    assert match_term("+++", candidates, 0.3) == [1]


def test_search_falls_back_to_substring_when_fuzzy_finds_nothing(client: TestClient, make_product):
    make_product(name="Grip+++ Pro")
    make_product(name="Pilot Sport 4")

    payload = client.get("/api/products", params={"search": "+++"}).json()

    assert [p["name"] for p in payload["data"]] == ["Grip+++ Pro"]
    assert payload["meta"]["pagination"]["total"] == 1


def test_search_pages_share_one_total(client: TestClient, make_product):
    for n in range(12):
        make_product(name=f"Eco Grip {n:02d}", model="Eco")

    pages = [
        client.get("/api/products", params={"search": "Eco Grip", "limit": 5, "page": page}).json()
        for page in (1, 2, 3)
    ]

    totals = {payload["meta"]["pagination"]["total"] for payload in pages}
    assert totals == {12}
    ids = [[p["id"] for p in payload["data"]] for payload in pages]
    assert [len(chunk) for chunk in ids] == [5, 5, 2]
    assert len(set(ids[0] + ids[1] + ids[2])) == 12


def test_unknown_sort_with_search_is_newest_first(client: TestClient, make_product):
    now = datetime.utcnow()
    make_product(name="Snowline", model="X", created_at=now - timedelta(days=3))
    make_product(name="Snowline Plus", model="X", created_at=now - timedelta(days=1))
    make_product(name="Snowlin", model="X", created_at=now)

    response = client.get(
        "/api/products",
        params={"search": "Snowline", "sortBy": "bogus", "sortOrder": "asc"},
    )

    assert [p["name"] for p in response.json()["data"]] == ["Snowlin", "Snowline Plus", "Snowline"]
