"""
Database connection helpers.
"""

import logging

from sqlalchemy import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from .config import Settings

logger = logging.getLogger(__name__)


def create_db_engine(settings: Settings) -> Engine:
    """
    Build the SQLAlchemy engine from settings.

    SQLite gets check_same_thread=False (the board sync fan-out uses worker
    threads) and a busy timeout, so a locked database is a bounded wait that
    surfaces as an error instead of blocking forever.
    """
    url = settings.database_url
    kwargs = {"echo": False}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.db_timeout_seconds,
        }
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["pool_timeout"] = settings.db_timeout_seconds

    engine = create_engine(url, **kwargs)
    logger.info("Database engine ready: %s", engine.url.render_as_string(hide_password=True))
    return engine


def create_schema(engine: Engine) -> None:
    """Create all database tables"""
    from . import models  # noqa: F401  (registers tables on SQLModel.metadata)

    SQLModel.metadata.create_all(engine)
