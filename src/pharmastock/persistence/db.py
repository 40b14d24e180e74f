"""Relational database connectivity helpers.

Provides engine creation and transactional connection scopes. Engines are
created explicitly by the composition root and passed to repositories; there
is no module-level engine cache.

Environment Variables:
    PHARMASTOCK_DATABASE_URL: Application connection string
"""

from __future__ import annotations

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine

from pharmastock.config import DATABASE_URL_ENV, DEFAULT_DB_POOL_SIZE

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)


class DatabaseConfigError(Exception):
    """Raised when database configuration is missing or invalid.

    This is a fail-closed error - operations requiring the database
    should not proceed without valid configuration.
    """

    pass


def _ensure_psycopg_driver(url: str) -> str:
    """Rewrite the legacy postgres:// scheme that SQLAlchemy rejects."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_url() -> str:
    """Get the database URL from environment.

    Raises:
        DatabaseConfigError: If PHARMASTOCK_DATABASE_URL is not set.
    """
    url = os.environ.get(DATABASE_URL_ENV, "").strip()
    if not url:
        raise DatabaseConfigError(
            f"Database URL not configured. Set {DATABASE_URL_ENV} environment variable."
        )
    return _ensure_psycopg_driver(url)


def create_db_engine(url: str, *, pool_size: int = DEFAULT_DB_POOL_SIZE) -> Engine:
    """Create the application engine with a small fixed connection pool.

    Args:
        url: SQLAlchemy database URL.
        pool_size: Pool size for server databases (ignored for SQLite).

    Returns:
        SQLAlchemy Engine.
    """
    url = _ensure_psycopg_driver(url)
    kwargs: dict[str, Any] = {"pool_pre_ping": True, "echo": False}
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=pool_size, max_overflow=0)

    engine = create_engine(url, **kwargs)
    logger.info("Created database engine (dialect=%s)", engine.dialect.name)
    return engine


@contextmanager
def begin_conn(engine: Engine) -> Generator[Connection, None, None]:
    """Context manager for a connection with a transaction.

    Commits on success and rolls back on error.

    Yields:
        SQLAlchemy Connection in a transaction.
    """
    with engine.connect() as conn, conn.begin():
        yield conn
