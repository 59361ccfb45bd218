import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cms.config import settings
from cms.database import engine, init_models
from cms.exceptions import RegistryNotInitializedError
from cms.logging_config import configure_logging
from cms.middleware import TimingMiddleware
from cms.registry import ArticleRegistry
from cms.routers import articles
from cms.schemas import HealthResponse

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    await init_models(engine)
    registry = ArticleRegistry()
    registry.init(engine)
    app.state.article_registry = registry
    logger.info("Article store started (env=%s)", settings.APP_ENV)
    yield
    # Shutdown
    await engine.dispose()


app = FastAPI(
    title="Article Store API",
    description="Article storage, listing and search backend for the content management system",
    version=VERSION,
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(articles.router)


@app.exception_handler(RegistryNotInitializedError)
async def registry_not_initialized(request: Request, exc: RegistryNotInitializedError):
    logger.error("Request to %s before the article registry was initialised", request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Article store is not ready"})


@app.get("/health", response_model=HealthResponse)
async def health(request: Request):
    registry = getattr(request.app.state, "article_registry", None)
    if registry is None or not registry.is_initialized:
        indexes = "uninitialized"
    else:
        indexes = registry.get().index_state.value
    return HealthResponse(status="healthy", version=VERSION, indexes=indexes)
