import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# --- Article ---

class ArticleBase(BaseModel):
    title: str = Field(max_length=300)
    content_url: str = Field(max_length=2048)
    author_id: uuid.UUID
    category_id: uuid.UUID | None = None
    is_published: bool = False
    published_at: datetime | None = None


class ArticleCreate(ArticleBase):
    """Creation payload; id, timestamps and counters are assigned by the store."""


class ArticleUpdate(BaseModel):
    """
    Partial update payload.

    Unknown keys (including ``id``, ``views``, ``likes_count`` and
    ``created_at``) are dropped on validation; string category ids are
    coerced to UUIDs and rejected when malformed.
    """

    title: str | None = Field(None, max_length=300)
    content_url: str | None = Field(None, max_length=2048)
    author_id: uuid.UUID | None = None
    category_id: uuid.UUID | None = None
    is_published: bool | None = None
    published_at: datetime | None = None

    model_config = ConfigDict(extra="ignore")


class ArticleRead(ArticleBase):
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    views: int = 0
    likes_count: int = 0
    model_config = ConfigDict(from_attributes=True)


# --- Query structs ---

class ArticleFilter(BaseModel):
    """AND-combined criteria for ``ArticleRepository.find_many``; unset fields do not filter."""

    author_id: uuid.UUID | None = None
    category_id: uuid.UUID | None = None
    is_published: bool | None = None
    published_since: datetime | None = None


class LikesUpdate(BaseModel):
    """One absolute like-count overwrite for ``update_stats_for_articles``."""

    id: str | uuid.UUID
    likes_count: int


# --- Pagination ---

class ArticlePage(BaseModel):
    items: list[ArticleRead]
    total: int
    page: int
    limit: int


# --- Health ---

class HealthResponse(BaseModel):
    status: str
    version: str
    indexes: str
