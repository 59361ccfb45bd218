"""
Test infrastructure for the article store.

Strategy
--------
- SQLite via aiosqlite removes the need for a running Postgres instance.
  Each test gets its own database *file* under ``tmp_path`` rather than
  ``:memory:``: the repository opens several sessions at once (page and
  COUNT queries run concurrently), and every pooled connection must see
  the same data.
- Tables are created fresh for every test; indexes are left to the
  repository's own provisioning, which is what production does.
- The HTTP app never runs its lifespan under ``ASGITransport``, so the
  ``async_client`` fixture places a registry bound to the test engine on
  ``app.state`` itself.
"""
import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from cms.database import init_models
from cms.main import app
from cms.middleware import install_query_counter
from cms.registry import ArticleRegistry
from cms.repositories.article_repository import ArticleRepository
from cms.schemas import ArticleCreate


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncEngine:
    """File-backed SQLite engine with the schema created, disposed after the test."""
    engine_test = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'articles.db'}")
    install_query_counter(engine_test)
    await init_models(engine_test)
    yield engine_test
    await engine_test.dispose()


@pytest_asyncio.fixture
async def repo(engine: AsyncEngine) -> ArticleRepository:
    return ArticleRepository(engine)


@pytest.fixture
def author_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_article(repo: ArticleRepository, author_id: uuid.UUID):
    """Factory creating an article through the repository with sensible defaults."""

    async def _make(**overrides):
        data = {
            "title": "Hello",
            "content_url": "/c/1",
            "author_id": author_id,
            **overrides,
        }
        return await repo.create(ArticleCreate(**data))

    return _make


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def async_client(engine: AsyncEngine) -> AsyncClient:
    """httpx client wired to the FastAPI app, backed by the test engine."""
    registry = ArticleRegistry()
    registry.init(engine)
    app.state.article_registry = registry
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    del app.state.article_registry
