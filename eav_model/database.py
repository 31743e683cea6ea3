"""
Database configuration and connection management.

Builds the SQLAlchemy engine and session factory from settings and logs
slow queries.
"""

import time
from typing import Generator

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .models import Base

logger = structlog.get_logger(__name__)


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


def build_engine(db_url: str = None) -> Engine:
    """
    Create an engine for the given URL.

    Pool sizing is only applied to server databases, SQLite uses the
    dialect's default pool.

    Args:
        db_url: Database connection URL, defaults to ``settings.DATABASE_URL``

    Returns:
        SQLAlchemy engine
    """
    db_url = db_url or settings.DATABASE_URL
    options = {
        "connect_args": get_connect_args(db_url),
        "echo": settings.DB_ECHO,
    }
    if "sqlite" not in db_url:
        options.update(
            pool_pre_ping=settings.DB_POOL_PRE_PING,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
    return create_engine(db_url, **options)


@event.listens_for(Engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Track query start time."""
    conn.info.setdefault("query_start_time", []).append(time.time())


@event.listens_for(Engine, "after_cursor_execute")
def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Log slow queries."""
    total_time_ms = (time.time() - conn.info["query_start_time"].pop()) * 1000

    if total_time_ms > settings.QUERY_LOG_THRESHOLD_MS:
        logger.warning(
            "Slow query detected",
            query_time_ms=round(total_time_ms, 2),
            statement=statement[:200],
        )


engine = build_engine()

SessionLocal = sessionmaker(autoflush=False, bind=engine)


def init_db(bind: Engine = None) -> None:
    """
    Create the value store tables.

    Uses checkfirst=True to safely handle existing tables.
    """
    bind = bind or engine
    logger.info(
        "Initializing database tables",
        url=bind.url.render_as_string(hide_password=True),
    )
    Base.metadata.create_all(bind=bind, checkfirst=True)


def get_db() -> Generator[Session, None, None]:
    """
    Get a request-scoped database session.

    Yields:
        SQLAlchemy database session, closed when the generator is finished
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
