"""Environment-based configuration for the stock ingestion service.

Environment Variables:
    PHARMASTOCK_DATABASE_URL: SQLAlchemy database URL (Postgres mode when set)
    PHARMASTOCK_BLOB_CONNECTION_STRING: Azure Storage connection string (Azure
        backend when set, filesystem backend otherwise)
    PHARMASTOCK_BLOB_BASE_DIR: Base directory of the filesystem blob backend
    PHARMASTOCK_BLOB_CONTAINER: Container name (default: "stock-files")
    PHARMASTOCK_INBOX_PREFIX: Inbox area prefix (default: "inbox/")
    PHARMASTOCK_PROCESSED_PREFIX: Processed area prefix (default: "processed/")
    PHARMASTOCK_ERROR_PREFIX: Error area prefix (default: "error/")
    PHARMASTOCK_MIN_FILE_AGE_MINUTES: Minimum file age before ingestion (default: 15)
    PHARMASTOCK_RUN_INTERVAL_SECONDS: Interval of the serve worker (default: 300)
    PHARMASTOCK_STALE_LEASE_MINUTES: Warn about PROCESSING leases older than this
        (default: unset, no warning)
    PHARMASTOCK_DB_POOL_SIZE: Connection pool size (default: 3)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from pharmastock.errors import ConfigError
from pharmastock.storage.azure_store import BLOB_CONNECTION_STRING_ENV
from pharmastock.storage.filesystem_store import BLOB_BASE_DIR_ENV, DEFAULT_CONTAINER
from pharmastock.storage.layout import (
    DEFAULT_ERROR_PREFIX,
    DEFAULT_INBOX_PREFIX,
    DEFAULT_PROCESSED_PREFIX,
    normalize_prefix,
)

DATABASE_URL_ENV = "PHARMASTOCK_DATABASE_URL"
BLOB_CONTAINER_ENV = "PHARMASTOCK_BLOB_CONTAINER"
INBOX_PREFIX_ENV = "PHARMASTOCK_INBOX_PREFIX"
PROCESSED_PREFIX_ENV = "PHARMASTOCK_PROCESSED_PREFIX"
ERROR_PREFIX_ENV = "PHARMASTOCK_ERROR_PREFIX"
MIN_FILE_AGE_MINUTES_ENV = "PHARMASTOCK_MIN_FILE_AGE_MINUTES"
RUN_INTERVAL_SECONDS_ENV = "PHARMASTOCK_RUN_INTERVAL_SECONDS"
STALE_LEASE_MINUTES_ENV = "PHARMASTOCK_STALE_LEASE_MINUTES"
DB_POOL_SIZE_ENV = "PHARMASTOCK_DB_POOL_SIZE"

DEFAULT_MIN_FILE_AGE_MINUTES = 15
DEFAULT_RUN_INTERVAL_SECONDS = 300
DEFAULT_DB_POOL_SIZE = 3


def _env_or(env: Mapping[str, str], key: str, default: str) -> str:
    """Return the variable, or default when unset or blank."""
    value = env.get(key)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(env: Mapping[str, str], key: str, default: int | None, *, minimum: int) -> int | None:
    """Parse an integer variable, enforcing a lower bound."""
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as e:
        raise ConfigError(f"Invalid integer for {key}: {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class IngestionSettings:
    """Resolved runtime settings.

    Attributes:
        database_url: SQLAlchemy URL, or None to run on in-memory repositories.
        blob_connection_string: Azure connection string, or None for the
            filesystem backend.
        blob_base_dir: Base directory of the filesystem backend (None = OS temp).
        blob_container: Container name.
        inbox_prefix: Normalized inbox prefix.
        processed_prefix: Normalized processed prefix.
        error_prefix: Normalized error prefix.
        min_file_age_minutes: Files younger than this are skipped.
        run_interval_seconds: Interval of the serve worker.
        stale_lease_minutes: Warning threshold for PROCESSING leases, or None.
        db_pool_size: Size of the connection pool.
    """

    database_url: str | None = None
    blob_connection_string: str | None = field(default=None, repr=False)
    blob_base_dir: str | None = None
    blob_container: str = DEFAULT_CONTAINER
    inbox_prefix: str = DEFAULT_INBOX_PREFIX
    processed_prefix: str = DEFAULT_PROCESSED_PREFIX
    error_prefix: str = DEFAULT_ERROR_PREFIX
    min_file_age_minutes: int = DEFAULT_MIN_FILE_AGE_MINUTES
    run_interval_seconds: int = DEFAULT_RUN_INTERVAL_SECONDS
    stale_lease_minutes: int | None = None
    db_pool_size: int = DEFAULT_DB_POOL_SIZE

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> IngestionSettings:
        """Build settings from environment variables.

        Args:
            env: Mapping to read from. Defaults to os.environ.

        Raises:
            ConfigError: If a numeric variable is malformed or out of range.
        """
        if env is None:
            env = os.environ

        database_url = env.get(DATABASE_URL_ENV, "").strip() or None
        blob_connection_string = env.get(BLOB_CONNECTION_STRING_ENV, "").strip() or None
        blob_base_dir = env.get(BLOB_BASE_DIR_ENV, "").strip() or None

        min_age = _env_int(env, MIN_FILE_AGE_MINUTES_ENV, DEFAULT_MIN_FILE_AGE_MINUTES, minimum=0)
        interval = _env_int(env, RUN_INTERVAL_SECONDS_ENV, DEFAULT_RUN_INTERVAL_SECONDS, minimum=1)
        pool_size = _env_int(env, DB_POOL_SIZE_ENV, DEFAULT_DB_POOL_SIZE, minimum=1)

        inbox_prefix = normalize_prefix(_env_or(env, INBOX_PREFIX_ENV, DEFAULT_INBOX_PREFIX))
        processed_prefix = normalize_prefix(
            _env_or(env, PROCESSED_PREFIX_ENV, DEFAULT_PROCESSED_PREFIX)
        )
        error_prefix = normalize_prefix(_env_or(env, ERROR_PREFIX_ENV, DEFAULT_ERROR_PREFIX))
        if len({inbox_prefix, processed_prefix, error_prefix}) != 3:
            raise ConfigError(
                "Inbox, processed and error prefixes must be distinct: "
                f"{inbox_prefix!r}, {processed_prefix!r}, {error_prefix!r}"
            )

        return cls(
            database_url=database_url,
            blob_connection_string=blob_connection_string,
            blob_base_dir=blob_base_dir,
            blob_container=_env_or(env, BLOB_CONTAINER_ENV, DEFAULT_CONTAINER),
            inbox_prefix=inbox_prefix,
            processed_prefix=processed_prefix,
            error_prefix=error_prefix,
            min_file_age_minutes=min_age if min_age is not None else DEFAULT_MIN_FILE_AGE_MINUTES,
            run_interval_seconds=interval if interval is not None else DEFAULT_RUN_INTERVAL_SECONDS,
            stale_lease_minutes=_env_int(env, STALE_LEASE_MINUTES_ENV, None, minimum=1),
            db_pool_size=pool_size if pool_size is not None else DEFAULT_DB_POOL_SIZE,
        )
