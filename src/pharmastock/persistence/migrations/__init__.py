"""Programmatic Alembic migrations for the ingestion schema.

Runs without the alembic CLI or an ini file. ``env.py`` is loaded by Alembic
itself and must not be imported directly.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def get_alembic_config() -> Config:
    """Create Alembic config pointing to this migrations package."""
    config = Config()
    config.set_main_option("script_location", os.path.dirname(__file__))
    return config


def get_current_revision(engine: Engine) -> str | None:
    """Get the current migration revision from the database."""
    with engine.connect() as conn:
        ctx = MigrationContext.configure(conn)
        return ctx.get_current_revision()


def get_head_revision() -> str | None:
    """Get the head revision from the migration scripts."""
    script = ScriptDirectory.from_config(get_alembic_config())
    return script.get_current_head()


def run_upgrade(engine: Engine, revision: str = "head") -> None:
    """Run migrations up to the specified revision on engine."""
    config = get_alembic_config()
    with engine.begin() as conn:
        config.attributes["connection"] = conn
        command.upgrade(config, revision)
    logger.info("Migrations upgraded to %s", revision)


def run_downgrade(engine: Engine, revision: str = "base") -> None:
    """Run migrations down to the specified revision on engine."""
    config = get_alembic_config()
    with engine.begin() as conn:
        config.attributes["connection"] = conn
        command.downgrade(config, revision)
    logger.info("Migrations downgraded to %s", revision)


__all__ = [
    "get_alembic_config",
    "get_current_revision",
    "get_head_revision",
    "run_downgrade",
    "run_upgrade",
]
