"""
Database configuration and connection management.

Engines and session factories are built once at startup from ``Settings``
and handed to the record-store adapters; nothing here is created at import
time.
"""

import logging
import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import Settings
from .models import Base

logger = logging.getLogger(__name__)

QUERY_LOGGING_THRESHOLD_MS = 100


def get_connect_args(db_url: str) -> dict:
    """
    Get database-specific connection arguments.

    Args:
        db_url: Database connection URL

    Returns:
        Connection arguments dict
    """
    if "sqlite" in db_url:
        return {"check_same_thread": False}
    return {}


def _safe_url(db_url: str) -> str:
    if "@" in db_url:
        return db_url.split("@")[0].rsplit(":", 1)[0] + ":***@..."
    return db_url


def create_db_engine(settings: Settings) -> Engine:
    """
    Create the record-store engine.

    SQLite URLs (used for local runs and tests) get a single shared
    connection; everything else uses a sized connection pool.
    """
    db_url = settings.DATABASE_URL
    logger.info("Using database: %s", _safe_url(db_url))

    if db_url.startswith("sqlite"):
        return create_engine(
            db_url,
            connect_args=get_connect_args(db_url),
            poolclass=StaticPool,
            echo=False,
        )

    return create_engine(
        db_url,
        connect_args=get_connect_args(db_url),
        pool_pre_ping=True,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        echo=False,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create the session factory used by record-store adapters."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """
    Initialize database tables.

    Uses checkfirst=True to safely handle existing tables.
    """
    logger.info("Initializing database tables...")
    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("Database initialized successfully")


@event.listens_for(Engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Track query start time."""
    conn.info.setdefault("query_start_time", []).append(time.time())


@event.listens_for(Engine, "after_cursor_execute")
def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Log slow queries."""
    total_time_ms = (time.time() - conn.info["query_start_time"].pop()) * 1000

    if total_time_ms > QUERY_LOGGING_THRESHOLD_MS:
        logger.warning(
            "Slow query detected: %.2fms",
            total_time_ms,
            extra={"query_time_ms": total_time_ms, "statement": statement[:200]},
        )
