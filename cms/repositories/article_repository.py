"""
Article repository — every read and write against the ``articles`` table.

Design notes
------------
- The repository is bound to an ``AsyncEngine`` and opens one short
  session per database round-trip.  Paginated reads run the page query
  and the COUNT query in two sessions concurrently and join them.
- Index provisioning is lazy and best effort: the first call of any
  public method triggers ``ensure_indexes()``, whose outcome (success or
  failure) is recorded in ``index_state`` and never retried.  There is
  no lock; concurrent first calls may provision twice, which the
  "already exists" tolerance makes harmless.
- Malformed identifiers are not errors.  Lookups return ``None``,
  listings return an empty page and counter updates do nothing.
- Store errors other than index provisioning propagate unchanged.
"""
import asyncio
import enum
import functools
import logging
import uuid
from collections.abc import Iterable, Mapping, Sequence
from datetime import timedelta
from typing import Any

from sqlalchemy import Index, MetaData, Table, bindparam, delete, func, insert, inspect, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from cms import text_search
from cms.config import settings
from cms.exceptions import ArticleCreationError
from cms.models import Article, utcnow
from cms.schemas import (
    ArticleCreate,
    ArticleFilter,
    ArticlePage,
    ArticleRead,
    ArticleUpdate,
    LikesUpdate,
)

logger = logging.getLogger(__name__)

# PostgreSQL duplicate_table, raised by CREATE INDEX on an existing name.
DUPLICATE_INDEX_SQLSTATE = "42P07"

# Never writable through update_by_id.
_PROTECTED_FIELDS = ("id", "views", "likes_count", "created_at", "updated_at")
_NON_NULLABLE_FIELDS = frozenset({"title", "content_url", "author_id", "is_published"})

# Columns that are safe to sort by; anything else falls back to created_at.
_SORTABLE_COLUMNS: frozenset[str] = frozenset(
    {"created_at", "updated_at", "published_at", "title", "views", "likes_count"}
)


class IndexState(str, enum.Enum):
    NOT_ATTEMPTED = "not_attempted"
    READY = "ready"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def parse_id(value: Any) -> uuid.UUID | None:
    """Return *value* as a UUID, or None when it is not a well-formed identifier."""
    if isinstance(value, uuid.UUID):
        return value
    if not isinstance(value, str):
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


def is_duplicate_index_error(exc: BaseException) -> bool:
    """True when *exc* reports that the index being created already exists."""
    orig = getattr(exc, "orig", None) or exc
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == DUPLICATE_INDEX_SQLSTATE:
        return True
    return "already exists" in str(orig).lower()


def _secondary_indexes(table: Table) -> list[Index]:
    return [
        # Published feed, newest publication first
        Index("published_status_idx", table.c.is_published, table.c.published_at.desc()),
        # Author pages
        Index("author_created_idx", table.c.author_id, table.c.created_at.desc()),
        # Category pages
        Index("category_created_idx", table.c.category_id, table.c.created_at.desc()),
    ]


def index_definitions(dialect_name: str, config: str) -> tuple[Index, list[Index]]:
    """Return ``(text_index, secondary_indexes)`` as provisioning creates them."""
    # Detached copy of the table so these Index objects never land on
    # Base.metadata (create_all must not emit them).
    table = Article.__table__.to_metadata(MetaData())
    return text_search.text_index(table, dialect_name, config), _secondary_indexes(table)


def _resolve_order_by(sort: Sequence[str]) -> list:
    """
    Translate ``("-created_at", "title")`` style keys into ORDER BY clauses.

    A leading ``-`` means descending.  Unknown column names fall back to
    ``Article.created_at`` rather than reaching ``getattr`` unchecked.
    """
    clauses = []
    for key in sort:
        name = key.lstrip("-")
        column = getattr(Article, name) if name in _SORTABLE_COLUMNS else Article.created_at
        clauses.append(column.desc() if key.startswith("-") else column.asc())
    return clauses or [Article.created_at.desc()]


def _filter_clauses(criteria: ArticleFilter) -> list:
    clauses = []
    if criteria.author_id is not None:
        clauses.append(Article.author_id == criteria.author_id)
    if criteria.category_id is not None:
        clauses.append(Article.category_id == criteria.category_id)
    if criteria.is_published is not None:
        clauses.append(Article.is_published.is_(criteria.is_published))
    if criteria.published_since is not None:
        clauses.append(Article.published_at >= criteria.published_since)
    return clauses


def _clean_patch(patch: ArticleUpdate | Mapping[str, Any]) -> dict[str, Any]:
    """
    Reduce an update payload to the column values that may be written.

    Protected fields are stripped, mappings are validated through
    ``ArticleUpdate`` (coercing string category ids) and ``None`` is
    dropped for columns that cannot hold NULL.
    """
    if not isinstance(patch, ArticleUpdate):
        raw = {k: v for k, v in patch.items() if k not in _PROTECTED_FIELDS}
        patch = ArticleUpdate.model_validate(raw)
    changes = patch.model_dump(exclude_unset=True)
    for field in _PROTECTED_FIELDS:
        changes.pop(field, None)
    return {
        field: value
        for field, value in changes.items()
        if value is not None or field not in _NON_NULLABLE_FIELDS
    }


def _empty_page(page: int, limit: int) -> ArticlePage:
    return ArticlePage(items=[], total=0, page=page, limit=limit)


def _with_indexes(method):
    """Run ``ensure_indexes()`` before the wrapped repository coroutine."""

    @functools.wraps(method)
    async def wrapper(self: "ArticleRepository", *args, **kwargs):
        await self.ensure_indexes()
        return await method(self, *args, **kwargs)

    return wrapper


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class ArticleRepository:
    """Data access for Article records, bound to one engine."""

    def __init__(self, engine: AsyncEngine, text_search_config: str | None = None) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)
        self._text_search_config = text_search_config or settings.TEXT_SEARCH_CONFIG
        self._index_state = IndexState.NOT_ATTEMPTED

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def index_state(self) -> IndexState:
        return self._index_state

    @property
    def _dialect(self) -> str:
        return self._engine.dialect.name

    # ------------------------------------------------------------------
    # Index provisioning
    # ------------------------------------------------------------------

    async def ensure_indexes(self) -> None:
        """
        Provision the article indexes once per repository instance.

        Failures are logged and recorded as ``IndexState.FAILED``; the
        caller's operation proceeds either way, possibly without index
        coverage.
        """
        if self._index_state is not IndexState.NOT_ATTEMPTED:
            return
        try:
            await self._create_indexes()
        except Exception:
            self._index_state = IndexState.FAILED
            logger.exception("Article index provisioning failed; continuing without indexes")
            return
        self._index_state = IndexState.READY
        logger.info("Article indexes ready")

    async def _create_indexes(self) -> None:
        text_idx, secondary = index_definitions(self._dialect, self._text_search_config)
        table = text_idx.table
        logger.info("Provisioning article indexes (dialect=%s)", self._dialect)

        # 1. Drop any earlier text index; its key set may differ from ours.
        try:
            async with self._engine.connect() as conn:
                existing = await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).get_indexes(table.name)
                )
            for info in existing:
                if text_search.is_text_index(info):
                    logger.info("Dropping existing text index %s", info["name"])
                    await self._drop_index(info["name"])
        except SQLAlchemyError as exc:
            logger.info("No existing text index dropped: %s", exc)

        # 2. Composite text index over title and content reference.
        await self._create_index(text_idx)
        logger.info("Created text index %s", text_idx.name)

        # 3. Secondary indexes, each independent of the others.
        for index in secondary:
            try:
                await self._create_index(index)
            except Exception as exc:
                if is_duplicate_index_error(exc):
                    logger.debug("Index %s already exists, skipping", index.name)
                else:
                    logger.warning("Could not create index %s: %s", index.name, exc)
            else:
                logger.info("Created index %s", index.name)

    async def _create_index(self, index: Index) -> None:
        # One transaction per statement: a failed DDL aborts its transaction on PostgreSQL.
        async with self._engine.begin() as conn:
            await conn.run_sync(index.create)

    async def _drop_index(self, name: str) -> None:
        async with self._engine.begin() as conn:
            quoted = conn.dialect.identifier_preparer.quote(name)
            await conn.execute(text(f"DROP INDEX {quoted}"))

    # ------------------------------------------------------------------
    # Query plumbing
    # ------------------------------------------------------------------

    async def _fetch_all(self, stmt) -> list[ArticleRead]:
        async with self._sessions() as session:
            result = await session.scalars(stmt)
            return [ArticleRead.model_validate(article) for article in result.all()]

    async def _count(self, where: list) -> int:
        stmt = select(func.count()).select_from(Article).where(*where)
        async with self._sessions() as session:
            return (await session.execute(stmt)).scalar_one()

    async def _paginate(self, where: list, order_by: list, page: int, limit: int) -> ArticlePage:
        skip = (page - 1) * limit
        stmt = select(Article).where(*where).order_by(*order_by).offset(skip).limit(limit)
        # Both queries settle before any error surfaces; no orphaned session.
        items, total = await asyncio.gather(
            self._fetch_all(stmt), self._count(where), return_exceptions=True
        )
        for outcome in (items, total):
            if isinstance(outcome, BaseException):
                raise outcome
        return ArticlePage(items=items, total=total, page=page, limit=limit)

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    @_with_indexes
    async def create(self, data: ArticleCreate | Mapping[str, Any]) -> ArticleRead:
        """
        Insert a new article and return it.

        The id is generated here, both counters start at zero and
        ``created_at`` equals ``updated_at``.  Raises
        ``ArticleCreationError`` when the insert returns no id.
        """
        if not isinstance(data, ArticleCreate):
            data = ArticleCreate.model_validate(data)
        now = utcnow()
        values = {
            **data.model_dump(),
            "id": uuid.uuid4(),
            "views": 0,
            "likes_count": 0,
            "created_at": now,
            "updated_at": now,
        }
        async with self._sessions.begin() as session:
            result = await session.execute(insert(Article).values(**values).returning(Article.id))
            if result.scalar_one_or_none() is None:
                raise ArticleCreationError()
        return ArticleRead(**values)

    @_with_indexes
    async def find_by_id(self, article_id: str | uuid.UUID) -> ArticleRead | None:
        parsed = parse_id(article_id)
        if parsed is None:
            return None
        async with self._sessions() as session:
            article = await session.get(Article, parsed)
            return ArticleRead.model_validate(article) if article else None

    @_with_indexes
    async def find_by_ids(self, article_ids: Iterable[str | uuid.UUID]) -> list[ArticleRead]:
        """
        Return the articles for *article_ids* in the caller's order.

        Malformed and unknown ids are dropped; nothing is queried when no
        id is well formed.
        """
        parsed = [p for p in (parse_id(raw) for raw in article_ids) if p is not None]
        if not parsed:
            return []
        stmt = select(Article).where(Article.id.in_(parsed)).order_by(Article.created_at.desc())
        by_id = {article.id: article for article in await self._fetch_all(stmt)}
        return [by_id[p] for p in parsed if p in by_id]

    @_with_indexes
    async def find_many(
        self,
        criteria: ArticleFilter | Mapping[str, Any] | None = None,
        page: int = 1,
        limit: int = 20,
        sort: Sequence[str] = ("-created_at",),
    ) -> ArticlePage:
        if criteria is None:
            criteria = ArticleFilter()
        elif not isinstance(criteria, ArticleFilter):
            criteria = ArticleFilter.model_validate(criteria)
        return await self._paginate(_filter_clauses(criteria), _resolve_order_by(sort), page, limit)

    @_with_indexes
    async def find_published(
        self,
        page: int = 1,
        limit: int = 20,
        category_id: str | uuid.UUID | None = None,
    ) -> ArticlePage:
        where = [Article.is_published.is_(True)]
        if category_id is not None:
            parsed = parse_id(category_id)
            if parsed is None:
                return _empty_page(page, limit)
            where.append(Article.category_id == parsed)
        return await self._paginate(where, [Article.published_at.desc()], page, limit)

    @_with_indexes
    async def find_by_author(
        self,
        author_id: str | uuid.UUID,
        page: int = 1,
        limit: int = 20,
        include_unpublished: bool = False,
    ) -> ArticlePage:
        parsed = parse_id(author_id)
        if parsed is None:
            return _empty_page(page, limit)
        where = [Article.author_id == parsed]
        if not include_unpublished:
            where.append(Article.is_published.is_(True))
        return await self._paginate(where, [Article.created_at.desc()], page, limit)

    @_with_indexes
    async def search(
        self,
        query: str,
        page: int = 1,
        limit: int = 20,
        published_only: bool = True,
    ) -> ArticlePage:
        """
        Full-text search over title and content reference, best match first.

        A blank query matches nothing and skips the database.
        """
        if not query or not query.strip():
            return _empty_page(page, limit)
        match, relevance = text_search.match_and_rank(
            Article.__table__, self._dialect, self._text_search_config, query
        )
        where = [match]
        if published_only:
            where.append(Article.is_published.is_(True))
        return await self._paginate(
            where, [relevance.desc(), Article.created_at.desc()], page, limit
        )

    @_with_indexes
    async def find_popular(self, page: int = 1, limit: int = 20, days: int = 7) -> ArticlePage:
        """Articles published in the last *days* days, most liked, then most viewed, then newest."""
        threshold = utcnow() - timedelta(days=days)
        where = [Article.is_published.is_(True), Article.published_at >= threshold]
        order_by = [
            Article.likes_count.desc(),
            Article.views.desc(),
            Article.published_at.desc(),
        ]
        return await self._paginate(where, order_by, page, limit)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @_with_indexes
    async def update_by_id(
        self,
        article_id: str | uuid.UUID,
        patch: ArticleUpdate | Mapping[str, Any],
    ) -> ArticleRead | None:
        """
        Apply a partial update and return the article as stored afterwards.

        ``id``, the counters and ``created_at`` in *patch* are ignored and
        ``updated_at`` is always refreshed.  Returns None for a malformed
        or unknown id.  A malformed ``category_id`` raises
        ``pydantic.ValidationError`` before the database is touched.
        """
        parsed = parse_id(article_id)
        if parsed is None:
            return None
        changes = _clean_patch(patch)
        changes["updated_at"] = utcnow()
        stmt = update(Article).where(Article.id == parsed).values(**changes).returning(Article)
        async with self._sessions.begin() as session:
            article = (await session.scalars(stmt)).one_or_none()
            updated = ArticleRead.model_validate(article) if article else None
        return updated

    @_with_indexes
    async def delete_by_id(self, article_id: str | uuid.UUID) -> ArticleRead | None:
        """Delete an article and return its last stored state."""
        parsed = parse_id(article_id)
        if parsed is None:
            return None
        stmt = delete(Article).where(Article.id == parsed).returning(Article)
        async with self._sessions.begin() as session:
            article = (await session.scalars(stmt)).one_or_none()
            removed = ArticleRead.model_validate(article) if article else None
        return removed

    @_with_indexes
    async def increment_views(self, article_id: str | uuid.UUID) -> None:
        await self._add_to_counter(article_id, Article.views, 1)

    @_with_indexes
    async def update_likes_count(self, article_id: str | uuid.UUID, delta: int) -> None:
        """Add *delta* (possibly negative) to the like counter."""
        await self._add_to_counter(article_id, Article.likes_count, delta)

    async def _add_to_counter(self, article_id, column, delta: int) -> None:
        parsed = parse_id(article_id)
        if parsed is None:
            return
        # column + delta is evaluated by the database, so concurrent calls compose.
        stmt = (
            update(Article)
            .where(Article.id == parsed)
            .values({column: column + delta, Article.updated_at: utcnow()})
            .execution_options(synchronize_session=False)
        )
        async with self._sessions.begin() as session:
            await session.execute(stmt)

    @_with_indexes
    async def update_stats_for_articles(
        self, updates: Iterable[LikesUpdate | Mapping[str, Any]]
    ) -> None:
        """
        Overwrite like counters in one batched UPDATE.

        Values are absolute, unlike ``update_likes_count``.  Entries with
        a malformed id are skipped.
        """
        now = utcnow()
        rows = []
        for entry in updates:
            if not isinstance(entry, LikesUpdate):
                entry = LikesUpdate.model_validate(entry)
            parsed = parse_id(entry.id)
            if parsed is None:
                logger.debug("Skipping stats update for malformed id %r", entry.id)
                continue
            rows.append({"target_id": parsed, "new_likes": entry.likes_count, "stamp": now})
        if not rows:
            return

        table = Article.__table__
        stmt = (
            update(table)
            .where(table.c.id == bindparam("target_id", type_=table.c.id.type))
            .values(
                likes_count=bindparam("new_likes", type_=table.c.likes_count.type),
                updated_at=bindparam("stamp", type_=table.c.updated_at.type),
            )
        )
        async with self._sessions.begin() as session:
            await session.execute(stmt, rows)
        logger.debug("Overwrote like counters for %d article(s)", len(rows))
