"""Process-wide logging setup, called once from the application lifespan."""
import logging

from cms.config import settings

_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Apply *level* (default ``settings.LOG_LEVEL``) to the root logger.

    SQLAlchemy's engine logger is raised to INFO only when ``DEBUG`` is
    on, so statement echo stays out of normal logs.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=_FORMAT)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DEBUG else logging.WARNING
    )
