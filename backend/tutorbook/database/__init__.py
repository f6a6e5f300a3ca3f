"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from tutorbook.core.config import settings

logger = logging.getLogger(__name__)

_DEFAULT_POOL_KWARGS: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 5,
    "pool_recycle": 300,
    "pool_pre_ping": True,
}


def is_sqlite_url(url: str) -> bool:
    return url.lower().startswith("sqlite")


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Engine options for the configured backend; SQLite gets no pool sizing."""
    if is_sqlite_url(db_url):
        return {"connect_args": {"check_same_thread": False}, "echo": settings.database_echo}
    kwargs = dict(_DEFAULT_POOL_KWARGS)
    kwargs["echo"] = settings.database_echo
    return kwargs


def enable_sqlite_foreign_keys(target_engine: Engine) -> None:
    """SQLite ignores foreign keys unless every connection opts in."""

    @event.listens_for(target_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


db_url = settings.database_url
engine: Engine = create_engine(db_url, **_build_engine_kwargs(db_url))

if is_sqlite_url(db_url):
    enable_sqlite_foreign_keys(engine)


@event.listens_for(engine, "connect")
def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
    connection_record.info["connect_time"] = datetime.now()
    logger.debug("Database connection established")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables for the registered models."""
    import tutorbook.models  # noqa: F401  registers mappers on Base.metadata

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info("Database tables created")
