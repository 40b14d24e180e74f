"""Persistence module.

Provides relational database connectivity, repositories and migration support.
"""

from pharmastock.persistence.db import (
    DatabaseConfigError,
    begin_conn,
    create_db_engine,
    get_database_url,
)

__all__ = [
    "DatabaseConfigError",
    "begin_conn",
    "create_db_engine",
    "get_database_url",
]
