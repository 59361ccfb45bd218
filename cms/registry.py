"""
Single-instance holder for the article repository.

``main.py`` creates one registry at startup, initialises it with the
engine and stores it on ``app.state``; request handlers reach it
through ``cms.dependencies.get_article_repository``.  Calling ``init``
again replaces the repository (and with it the index provisioning
state).
"""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from cms.exceptions import RegistryNotInitializedError
from cms.repositories.article_repository import ArticleRepository

logger = logging.getLogger(__name__)


class ArticleRegistry:
    def __init__(self) -> None:
        self._repository: ArticleRepository | None = None

    def init(self, engine: AsyncEngine) -> ArticleRepository:
        """Bind a fresh repository to *engine*, replacing any previous one."""
        if self._repository is not None:
            logger.info("Replacing existing article repository")
        self._repository = ArticleRepository(engine)
        return self._repository

    def get(self) -> ArticleRepository:
        if self._repository is None:
            raise RegistryNotInitializedError()
        return self._repository

    @property
    def is_initialized(self) -> bool:
        return self._repository is not None
