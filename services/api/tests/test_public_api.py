from uuid import uuid4

from fastapi.testclient import TestClient

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD


def _login(client: TestClient) -> None:
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200


def _create(client: TestClient, headers: dict, entity: str = "stories", **body) -> dict:
    response = client.post(f"/api/admin/{entity}", json=body, headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()["data"]


def test_public_story_reads_only_published(http):
    client, seeded = http
    _login(client)
    headers = {"x-affiliate-id": str(seeded.affiliate_id)}
    live = _create(client, headers, title="Launch Day", status="published")
    _create(client, headers, title="Secret Draft")
    client.cookies.clear()

    listed = client.get("/api/public/stories", headers=headers).json()
    assert [item["slug"] for item in listed["data"]] == ["launch-day"]
    assert listed["meta"]["pagination"]["total"] == 1
    assert "author_id" not in listed["data"][0]

    detail = client.get("/api/public/stories/launch-day", headers=headers)
    assert detail.status_code == 200
    assert detail.json()["data"]["id"] == live["id"]
    assert client.get("/api/public/stories/secret-draft", headers=headers).status_code == 404

    excluded = client.get("/api/public/stories", params={"exclude_id": live["id"]}, headers=headers).json()
    assert excluded["data"] == []


def test_public_story_meta(http):
    client, seeded = http
    _login(client)
    headers = {"x-affiliate-id": str(seeded.affiliate_id)}
    _create(client, headers, title="Meta Story", status="published")

    meta = client.get("/api/public/stories/meta-story/meta", params={"affiliate_id": str(seeded.affiliate_id)})
    assert meta.status_code == 200
    data = meta.json()["data"]
    assert data["title"] == "Meta Story"
    assert data["type"] == "article"
    assert data["url"].endswith("/story/meta-story")
    assert data["story"]["slug"] == "meta-story"
    assert data["published_time"] is not None


def test_public_default_pages_and_modules(http):
    client, seeded = http
    params = {"affiliate_id": str(seeded.affiliate_id)}
    pages = client.get("/api/public/pages", params=params).json()["data"]
    assert [page["slug"] for page in pages] == ["home", "stories", "story"]
    assert client.get("/api/public/pages/home", params=params).json()["data"]["title"] == "Home"

    modules = client.get("/api/public/modules", params=params).json()["data"]
    assert len(modules) == 2
    assert client.get("/api/public/categories", params=params).json()["data"] == []


def test_public_requires_existing_affiliate(http):
    client, _ = http
    missing = client.get("/api/public/pages")
    assert missing.status_code == 400
    assert missing.json()["error"]["code"] == "AFFILIATE_CONTEXT_REQUIRED"

    unknown = client.get("/api/public/pages", params={"affiliate_id": str(uuid4())})
    assert unknown.status_code == 404


def test_content_slugs_are_unique_per_affiliate(http):
    client, seeded = http
    _login(client)
    headers = {"x-affiliate-id": str(seeded.affiliate_id)}

    first = _create(client, headers, title="Same Title")
    second = _create(client, headers, title="Same Title")
    assert (first["slug"], second["slug"]) == ("same-title", "same-title-1")

    untitled = _create(client, headers, title="日本語")
    assert untitled["slug"] == f"story-{untitled['id'].replace('-', '')[:8]}"

    clash = client.post("/api/admin/stories", json={"title": "Other", "slug": "same-title"}, headers=headers)
    assert clash.status_code == 409
    assert clash.json()["error"]["code"] == "CONTENT_SLUG_EXISTS"

    # 页面与稿件的 slug 互不影响。
    assert _create(client, headers, entity="pages", title="Same Title")["slug"] == "same-title"


def test_check_slug_suggests_suffix(http):
    client, seeded = http
    _login(client)
    headers = {"x-affiliate-id": str(seeded.affiliate_id)}
    story = _create(client, headers, title="Taken")

    free = client.get("/api/admin/stories/check-slug/Fresh Slug", headers=headers).json()["data"]
    assert free == {"slug": "fresh-slug", "available": True, "suggested": None}

    taken = client.get("/api/admin/stories/check-slug/taken", headers=headers).json()["data"]
    assert taken == {"slug": "taken", "available": False, "suggested": "taken-1"}

    own = client.get(
        "/api/admin/stories/check-slug/taken", params={"exclude_id": story["id"]}, headers=headers
    ).json()["data"]
    assert own["available"] is True
