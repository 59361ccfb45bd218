from fastapi import Query, Request

from cms.config import settings
from cms.exceptions import RegistryNotInitializedError
from cms.registry import ArticleRegistry
from cms.repositories.article_repository import ArticleRepository


class PaginationParams:
    """
    Reusable FastAPI dependency for ``page`` / ``limit`` query parameters.

    Usage in a router::

        @router.get("/articles")
        async def list_articles(pagination: PaginationParams = Depends()):
            ...

    ``limit`` is clamped to ``settings.MAX_PAGE_SIZE`` even when the
    caller asks for more, so raising the ceiling only needs a settings
    change.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            description="Number of articles per page.",
        ),
    ) -> None:
        self.page = page
        self.limit = min(limit, settings.MAX_PAGE_SIZE)


def get_article_registry(request: Request) -> ArticleRegistry:
    """Registry stored on the application state by the lifespan handler."""
    registry = getattr(request.app.state, "article_registry", None)
    if registry is None:
        raise RegistryNotInitializedError()
    return registry


def get_article_repository(request: Request) -> ArticleRepository:
    """
    Repository for the current request.

    Raises ``RegistryNotInitializedError`` when the application started
    without initialising the registry.
    """
    return get_article_registry(request).get()
