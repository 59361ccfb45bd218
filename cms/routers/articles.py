from fastapi import APIRouter, Depends, HTTPException, Query

from cms.config import settings
from cms.dependencies import PaginationParams, get_article_repository
from cms.exceptions import ArticleCreationError
from cms.repositories.article_repository import ArticleRepository
from cms.schemas import ArticleCreate, ArticlePage, ArticleRead, ArticleUpdate, LikesUpdate

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])


@router.get("", response_model=ArticlePage)
async def list_published(
    category_id: str | None = None,
    pagination: PaginationParams = Depends(),
    repo: ArticleRepository = Depends(get_article_repository),
):
    return await repo.find_published(pagination.page, pagination.limit, category_id=category_id)


@router.get("/popular", response_model=ArticlePage)
async def list_popular(
    days: int = Query(settings.POPULAR_WINDOW_DAYS, ge=1),
    pagination: PaginationParams = Depends(),
    repo: ArticleRepository = Depends(get_article_repository),
):
    return await repo.find_popular(pagination.page, pagination.limit, days=days)


@router.get("/search", response_model=ArticlePage)
async def search_articles(
    q: str = Query(..., description="Search terms matched against title and content URL."),
    published_only: bool = True,
    pagination: PaginationParams = Depends(),
    repo: ArticleRepository = Depends(get_article_repository),
):
    return await repo.search(q, pagination.page, pagination.limit, published_only=published_only)


@router.get("/batch", response_model=list[ArticleRead])
async def get_batch(
    ids: list[str] = Query(default=[]),
    repo: ArticleRepository = Depends(get_article_repository),
):
    return await repo.find_by_ids(ids)


@router.get("/by-author/{author_id}", response_model=ArticlePage)
async def list_by_author(
    author_id: str,
    include_unpublished: bool = False,
    pagination: PaginationParams = Depends(),
    repo: ArticleRepository = Depends(get_article_repository),
):
    return await repo.find_by_author(
        author_id, pagination.page, pagination.limit, include_unpublished=include_unpublished
    )


@router.put("/stats", status_code=204)
async def overwrite_stats(
    updates: list[LikesUpdate],
    repo: ArticleRepository = Depends(get_article_repository),
):
    await repo.update_stats_for_articles(updates)


@router.get("/{article_id}", response_model=ArticleRead)
async def get_article(article_id: str, repo: ArticleRepository = Depends(get_article_repository)):
    # Count the view first so the returned counter includes this read.
    await repo.increment_views(article_id)
    article = await repo.find_by_id(article_id)
    if not article:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


@router.post("", status_code=201, response_model=ArticleRead)
async def create_article(data: ArticleCreate, repo: ArticleRepository = Depends(get_article_repository)):
    try:
        return await repo.create(data)
    except ArticleCreationError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


@router.put("/{article_id}", response_model=ArticleRead)
async def update_article(
    article_id: str,
    data: ArticleUpdate,
    repo: ArticleRepository = Depends(get_article_repository),
):
    article = await repo.update_by_id(article_id, data)
    if not article:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


@router.delete("/{article_id}", response_model=ArticleRead)
async def delete_article(article_id: str, repo: ArticleRepository = Depends(get_article_repository)):
    article = await repo.delete_by_id(article_id)
    if not article:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


@router.post("/{article_id}/like", status_code=204)
async def like_article(article_id: str, repo: ArticleRepository = Depends(get_article_repository)):
    await repo.update_likes_count(article_id, 1)


@router.delete("/{article_id}/like", status_code=204)
async def unlike_article(article_id: str, repo: ArticleRepository = Depends(get_article_repository)):
    await repo.update_likes_count(article_id, -1)
