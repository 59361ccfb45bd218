from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from cms.config import settings
from cms.middleware import install_query_counter

# Module-level engine; tests build their own and hand it to the registry.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Register the per-request SQL statement counter on the production engine.
install_query_counter(engine)


class Base(DeclarativeBase):
    pass


async def init_models(bind: AsyncEngine) -> None:
    """
    Create the tables declared on ``Base.metadata`` if they are missing.

    Secondary and full-text indexes are not part of the metadata; the
    article repository provisions them lazily on first use.
    """
    import cms.models  # noqa: F401  (registers tables on Base.metadata)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
