"""
Article endpoint tests — the HTTP surface over ArticleRepository:
CRUD, listings, search, counters and diagnostic response headers.

Each test creates the articles it needs through the API, so test order
does not matter.
"""
import uuid
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient


async def _create(client: AsyncClient, author_id: str | None = None, **fields) -> dict:
    payload = {
        "title": "Hello",
        "content_url": "/c/1",
        "author_id": author_id or str(uuid.uuid4()),
        **fields,
    }
    resp = await client.post("/api/v1/articles", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _publish(client: AsyncClient, article_id: str) -> dict:
    resp = await client.put(f"/api/v1/articles/{article_id}", json={
        "is_published": True,
        "published_at": datetime.now(timezone.utc).isoformat(),
    })
    assert resp.status_code == 200
    return resp.json()


# ---------------------------------------------------------------------------
# Infrastructure / health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health_reports_index_state(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "version": "1.0.0", "indexes": "not_attempted"}

    await async_client.get("/api/v1/articles")
    resp = await async_client.get("/health")
    assert resp.json()["indexes"] == "ready"


@pytest.mark.asyncio
async def test_diagnostic_headers(async_client: AsyncClient):
    await _create(async_client)
    resp = await async_client.get("/api/v1/articles")
    assert "x-response-time-ms" in resp.headers
    # At least the page query and the COUNT query.
    assert int(resp.headers["x-query-count"]) >= 2


# ---------------------------------------------------------------------------
# Create / get
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_and_get_article(async_client: AsyncClient):
    author = str(uuid.uuid4())
    created = await _create(async_client, author_id=author, title="Hello", content_url="/c/1")
    assert created["views"] == 0
    assert created["likes_count"] == 0
    assert created["author_id"] == author
    assert created["is_published"] is False

    resp = await async_client.get(f"/api/v1/articles/{created['id']}")
    assert resp.status_code == 200
    detail = resp.json()
    assert detail["title"] == "Hello"
    assert detail["views"] == 1  # counted on read

    resp = await async_client.get(f"/api/v1/articles/{created['id']}")
    assert resp.json()["views"] == 2


@pytest.mark.asyncio
async def test_create_rejects_client_assigned_counters(async_client: AsyncClient):
    created = await _create(async_client, views=500, likes_count=20, id=str(uuid.uuid4()))
    assert created["views"] == 0
    assert created["likes_count"] == 0


@pytest.mark.asyncio
async def test_create_with_malformed_category_is_422(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/articles", json={
        "title": "Bad",
        "content_url": "/c/bad",
        "author_id": str(uuid.uuid4()),
        "category_id": "not-a-uuid",
    })
    assert resp.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize("article_id", ["not-an-id", str(uuid.uuid4())])
async def test_get_missing_or_malformed_is_404(async_client: AsyncClient, article_id):
    resp = await async_client.get(f"/api/v1/articles/{article_id}")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_article(async_client: AsyncClient):
    created = await _create(async_client)
    category = str(uuid.uuid4())
    resp = await async_client.put(f"/api/v1/articles/{created['id']}", json={
        "title": "Updated",
        "category_id": category,
        "views": 1000,
    })
    assert resp.status_code == 200
    updated = resp.json()
    assert updated["title"] == "Updated"
    assert updated["category_id"] == category
    assert updated["views"] == 0
    assert updated["created_at"] == created["created_at"]


@pytest.mark.asyncio
async def test_update_missing_is_404(async_client: AsyncClient):
    resp = await async_client.put(f"/api/v1/articles/{uuid.uuid4()}", json={"title": "Ghost"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_returns_removed_article(async_client: AsyncClient):
    created = await _create(async_client, title="Doomed")
    resp = await async_client.delete(f"/api/v1/articles/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["title"] == "Doomed"

    resp = await async_client.delete(f"/api/v1/articles/{created['id']}")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_shows_only_published(async_client: AsyncClient):
    draft = await _create(async_client, title="Draft")
    live = await _create(async_client, title="Live")
    await _publish(async_client, live["id"])

    resp = await async_client.get("/api/v1/articles")
    data = resp.json()
    assert data["total"] == 1
    assert data["items"][0]["id"] == live["id"]
    assert draft["id"] not in {a["id"] for a in data["items"]}


@pytest.mark.asyncio
async def test_list_pagination_params(async_client: AsyncClient):
    for i in range(3):
        created = await _create(async_client, title=f"Article {i}")
        await _publish(async_client, created["id"])

    resp = await async_client.get("/api/v1/articles", params={"page": 2, "limit": 2})
    data = resp.json()
    assert data["total"] == 3
    assert data["page"] == 2
    assert data["limit"] == 2
    assert len(data["items"]) == 1

    resp = await async_client.get("/api/v1/articles", params={"page": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_list_by_author(async_client: AsyncClient):
    author = str(uuid.uuid4())
    draft = await _create(async_client, author_id=author, title="Draft")
    live = await _create(async_client, author_id=author, title="Live")
    await _publish(async_client, live["id"])

    resp = await async_client.get(f"/api/v1/articles/by-author/{author}")
    assert [a["id"] for a in resp.json()["items"]] == [live["id"]]

    resp = await async_client.get(
        f"/api/v1/articles/by-author/{author}", params={"include_unpublished": True}
    )
    assert {a["id"] for a in resp.json()["items"]} == {draft["id"], live["id"]}

    resp = await async_client.get("/api/v1/articles/by-author/nobody")
    assert resp.status_code == 200
    assert resp.json()["total"] == 0


@pytest.mark.asyncio
async def test_batch_preserves_order(async_client: AsyncClient):
    a = await _create(async_client, title="A")
    b = await _create(async_client, title="B")
    resp = await async_client.get(
        "/api/v1/articles/batch",
        params=[("ids", b["id"]), ("ids", "junk"), ("ids", a["id"])],
    )
    assert resp.status_code == 200
    assert [x["id"] for x in resp.json()] == [b["id"], a["id"]]


@pytest.mark.asyncio
async def test_search_endpoint(async_client: AsyncClient):
    created = await _create(async_client, title="Hello", content_url="/c/1")

    resp = await async_client.get("/api/v1/articles/search", params={"q": "Hello"})
    assert resp.json()["items"] == []

    await _publish(async_client, created["id"])
    resp = await async_client.get("/api/v1/articles/search", params={"q": "Hello"})
    assert [a["id"] for a in resp.json()["items"]] == [created["id"]]

    resp = await async_client.get("/api/v1/articles/search")
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Likes and stats
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_like_and_unlike(async_client: AsyncClient):
    created = await _create(async_client)
    for _ in range(3):
        resp = await async_client.post(f"/api/v1/articles/{created['id']}/like")
        assert resp.status_code == 204
    resp = await async_client.delete(f"/api/v1/articles/{created['id']}/like")
    assert resp.status_code == 204

    resp = await async_client.get("/api/v1/articles/batch", params={"ids": created["id"]})
    assert resp.json()[0]["likes_count"] == 2


@pytest.mark.asyncio
async def test_stats_overwrite_and_popular(async_client: AsyncClient):
    quiet = await _create(async_client, title="Quiet")
    loved = await _create(async_client, title="Loved")
    for article in (quiet, loved):
        await _publish(async_client, article["id"])
    await async_client.post(f"/api/v1/articles/{quiet['id']}/like")

    resp = await async_client.put("/api/v1/articles/stats", json=[
        {"id": loved["id"], "likes_count": 5},
        {"id": quiet["id"], "likes_count": 0},
    ])
    assert resp.status_code == 204

    resp = await async_client.get("/api/v1/articles/popular")
    items = resp.json()["items"]
    assert [a["title"] for a in items] == ["Loved", "Quiet"]
    assert [a["likes_count"] for a in items] == [5, 0]
