"""Composition root for the ingestion orchestrator.

Wires settings into concrete adapters: the Azure or filesystem blob store, the
relational repositories when a database URL is configured (in-memory
repositories otherwise) and the orchestrator itself. Nothing is cached at
module level; each call builds its own graph.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from pharmastock.config import IngestionSettings
from pharmastock.observability.tracing import configure_tracing, instrument_sqlalchemy
from pharmastock.persistence.db import create_db_engine
from pharmastock.persistence.repositories import (
    get_ingestion_control_repository,
    get_medication_repository,
    get_pharmacy_repository,
    get_stock_repository,
)
from pharmastock.services.ingestion.orchestrator import RunSummary, StockIngestionOrchestrator
from pharmastock.storage.azure_store import AzureBlobStore
from pharmastock.storage.filesystem_store import FilesystemBlobStore
from pharmastock.storage.layout import InboxLayout
from pharmastock.storage.object_store import BlobStore

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def create_engine_from_settings(settings: IngestionSettings) -> Engine | None:
    """Create the database engine, or None when no URL is configured."""
    if settings.database_url is None:
        logger.warning("No database configured; using in-memory repositories")
        return None
    engine = create_db_engine(settings.database_url, pool_size=settings.db_pool_size)
    instrument_sqlalchemy(engine)
    return engine


def build_blob_store(settings: IngestionSettings) -> BlobStore:
    """Create the blob store selected by settings."""
    if settings.blob_connection_string is not None:
        return AzureBlobStore.from_connection_string(
            settings.blob_connection_string, settings.blob_container
        )
    return FilesystemBlobStore(base_dir=settings.blob_base_dir, container=settings.blob_container)


def build_layout(settings: IngestionSettings, store: BlobStore | None = None) -> InboxLayout:
    """Build the inbox layout over store.

    Without an explicit store, the Azure backend is used when a connection
    string is configured and the filesystem backend otherwise.
    """
    if store is None:
        store = build_blob_store(settings)
    return InboxLayout(
        store,
        inbox_prefix=settings.inbox_prefix,
        processed_prefix=settings.processed_prefix,
        error_prefix=settings.error_prefix,
    )


def build_orchestrator(
    settings: IngestionSettings,
    *,
    engine: Engine | None = None,
    store: BlobStore | None = None,
    clock: Callable[[], datetime] | None = None,
) -> StockIngestionOrchestrator:
    """Build a fully wired orchestrator.

    Args:
        settings: Resolved settings.
        engine: Database engine; None selects the in-memory repositories.
        store: Blob store; None selects the filesystem backend.
        clock: Source of "now" shared by the orchestrator.
    """
    control = (
        get_ingestion_control_repository(engine, clock=clock)
        if clock is not None
        else get_ingestion_control_repository(engine)
    )
    return StockIngestionOrchestrator(
        build_layout(settings, store),
        control,
        get_pharmacy_repository(engine),
        get_medication_repository(engine),
        get_stock_repository(engine),
        min_file_age_minutes=settings.min_file_age_minutes,
        clock=clock,
        stale_lease_minutes=settings.stale_lease_minutes,
    )


def run_scheduled() -> RunSummary:
    """Scheduled entry point: one ingestion run from environment settings.

    Raises:
        ConfigError: If the environment is misconfigured.
    """
    configure_tracing()
    settings = IngestionSettings.from_env()
    engine = create_engine_from_settings(settings)
    try:
        return build_orchestrator(settings, engine=engine).run()
    finally:
        if engine is not None:
            engine.dispose()
