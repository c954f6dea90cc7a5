"""Database connection helpers.

Provides:
- create_db_engine(): Engine for any SQLAlchemy URL (SQLite by default)
- create_session_factory(): sessionmaker bound to that engine
- init_db(): create all tables (no migrations for this service)
"""

from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from lynx_sdr.config import DATABASE_URL
from lynx_sdr.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(url: str | None = None) -> Engine:
    """Build an engine.  SQLite connections are shared across threads because
    each chat turn runs in a worker thread (``asyncio.to_thread``)."""
    parsed = make_url(url or DATABASE_URL)
    kwargs: dict = {"pool_pre_ping": True}

    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            # One connection for the whole process, otherwise every
            # checkout would see a fresh, empty in-memory database.
            kwargs["poolclass"] = StaticPool

    engine = create_engine(parsed, **kwargs)
    logger.debug("Database engine created for backend %s", parsed.get_backend_name())
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create every table that does not exist yet."""
    Base.metadata.create_all(engine)
    logger.info("Database schema ready")
