from fastapi.testclient import TestClient

from tirestore.api.v1.blog import estimate_read_time, normalize_tags


def _create_post(client: TestClient, admin_headers: dict, **overrides):
    body = {
        "title": "Winter Tire Guide",
        "content": "Cold weather changes how rubber behaves.",
        "category": "guides",
        "status": "published",
    }
    body.update(overrides)
    return client.post("/api/blog/admin/posts", headers=admin_headers, json=body)


def test_normalize_tags_accepts_every_shape():
    assert normalize_tags(["winter", " safety "]) == "winter,safety"
    assert normalize_tags('["winter", "safety"]') == "winter,safety"
    assert normalize_tags("winter#safety|tips,grip") == "winter,safety,tips,grip"
    assert normalize_tags("  ") is None
    assert normalize_tags(None) is None


def test_read_time_rounds_up_per_two_hundred_words():
    assert estimate_read_time("") == "1 min read"
    assert estimate_read_time("word " * 201) == "2 min read"


def test_create_post_generates_unique_slugs(client: TestClient, admin_headers: dict):
    first = _create_post(client, admin_headers, tags="winter|safety")
    second = _create_post(client, admin_headers)

    assert first.status_code == 201
    assert first.json()["data"]["slug"] == "winter-tire-guide"
    assert first.json()["data"]["tags"] == ["winter", "safety"]
    assert first.json()["data"]["publishedAt"] is not None
    assert second.json()["data"]["slug"] == "winter-tire-guide-1"


def test_drafts_are_hidden_from_public_listing(client: TestClient, admin_headers: dict):
    _create_post(client, admin_headers, title="Published Piece")
    draft = _create_post(client, admin_headers, title="Draft Piece", status="draft").json()["data"]

    listing = client.get("/api/blog").json()
    assert [post["title"] for post in listing["data"]] == ["Published Piece"]
    assert "content" not in listing["data"][0]
    assert client.get(f"/api/blog/{draft['slug']}").status_code == 404

    admin_listing = client.get("/api/blog/admin/posts", headers=admin_headers, params={"status": "draft"}).json()
    assert [post["title"] for post in admin_listing["data"]] == ["Draft Piece"]


def test_publishing_a_draft_sets_published_at(client: TestClient, admin_headers: dict):
    draft = _create_post(client, admin_headers, status="draft").json()["data"]
    assert draft["publishedAt"] is None

    response = client.put(f"/api/blog/admin/posts/{draft['id']}", headers=admin_headers, json={"status": "published"})

    assert response.json()["data"]["publishedAt"] is not None


def test_view_counter_increments(client: TestClient, admin_headers: dict):
    slug = _create_post(client, admin_headers).json()["data"]["slug"]

    client.post(f"/api/blog/{slug}/view")
    response = client.post(f"/api/blog/{slug}/view")

    assert response.json()["data"]["views"] == 2


def test_categories_count_published_posts(client: TestClient, admin_headers: dict):
    _create_post(client, admin_headers, category="guides")
    _create_post(client, admin_headers, category="news")
    _create_post(client, admin_headers, category="news")
    _create_post(client, admin_headers, category="news", status="draft")

    response = client.get("/api/blog/categories")

    assert response.json()["data"] == [{"name": "guides", "count": 1}, {"name": "news", "count": 2}]


def test_comments_need_moderation_before_showing(client: TestClient, admin_headers: dict):
    post = _create_post(client, admin_headers).json()["data"]

    created = client.post(
        f"/api/blog/{post['id']}/comments",
        json={"content": "Very helpful", "authorName": "Reader", "authorEmail": "reader@example.com"},
    )
    assert created.status_code == 201
    comment_id = created.json()["data"]["id"]
    assert client.get(f"/api/blog/{post['slug']}").json()["data"]["comments"] == []

    client.put(f"/api/blog/admin/comments/{comment_id}", headers=admin_headers, json={"status": "approved"})

    comments = client.get(f"/api/blog/{post['slug']}").json()["data"]["comments"]
    assert [c["content"] for c in comments] == ["Very helpful"]


def test_anonymous_comment_needs_name_and_email(client: TestClient, admin_headers: dict):
    post_id = _create_post(client, admin_headers).json()["data"]["id"]

    response = client.post(f"/api/blog/{post_id}/comments", json={"content": "Nice post"})

    assert response.status_code == 400


def test_signed_in_comment_uses_account_identity(client: TestClient, admin_headers: dict, user_headers: dict):
    post_id = _create_post(client, admin_headers).json()["data"]["id"]

    response = client.post(f"/api/blog/{post_id}/comments", headers=user_headers, json={"content": "Nice post"})

    assert response.json()["data"]["authorEmail"] == "driver@example.com"


def test_subscribe_and_unsubscribe(client: TestClient):
    assert client.post("/api/blog/subscribe", json={"email": "Fan@Example.com"}).json()["message"] == (
        "Successfully subscribed to the blog"
    )
    assert client.post("/api/blog/subscribe", json={"email": "fan@example.com"}).json()["message"] == (
        "Already subscribed"
    )
    assert client.post("/api/blog/unsubscribe", json={"email": "fan@example.com"}).status_code == 200
    assert client.post("/api/blog/unsubscribe", json={"email": "nobody@example.com"}).status_code == 404
