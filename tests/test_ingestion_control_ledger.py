"""Tests for the ingestion control ledger fencing protocol.

Every test runs against the in-memory ledger and against the relational
ledger on SQLite, which executes the same SQL used in production.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime, timedelta
from typing import Any

import pytest
from sqlalchemy import text

from pharmastock.errors import MAX_ERROR_REASON_LENGTH, InfrastructureError
from pharmastock.models.control_record import IngestStatus
from pharmastock.persistence.db import create_db_engine
from pharmastock.persistence.repositories import (
    InMemoryIngestionControlRepository,
    PostgresIngestionControlRepository,
    get_ingestion_control_repository,
)

PATH = "inbox/12345678000195/farmacia_estoque_2025-01-10_v1.csv"
TAG = "0xABC"
TENANT = "12345678000195"
FILE_NAME = "farmacia_estoque_2025-01-10_v1.csv"
REF_DATE = date(2025, 1, 10)


@pytest.fixture(params=["memory", "sqlite"])
def ledger(request: pytest.FixtureRequest, clock: Callable[[], datetime]) -> Any:
    """Create the ledger under test."""
    if request.param == "memory":
        return InMemoryIngestionControlRepository(clock=clock)
    engine = request.getfixturevalue("sqlite_engine")
    return PostgresIngestionControlRepository(engine, clock=clock)


def _acquire(ledger: Any, path: str = PATH, tag: str = TAG) -> int | None:
    return ledger.acquire(path, tag, TENANT, FILE_NAME, REF_DATE)


class TestAcquire:
    """Lease acquisition."""

    def test_first_acquire_returns_id(self, ledger: Any) -> None:
        """The first acquire creates a PROCESSING record."""
        record_id = _acquire(ledger)

        assert record_id is not None
        record = ledger.find(PATH, TAG)
        assert record is not None
        assert record.id == record_id
        assert record.status is IngestStatus.PROCESSING
        assert record.tenant_id == TENANT
        assert record.file_name == FILE_NAME
        assert record.reference_date == REF_DATE
        assert record.processed_at is None

    def test_second_acquire_returns_none(self, ledger: Any) -> None:
        """Acquiring an existing key yields nothing."""
        assert _acquire(ledger) is not None
        assert _acquire(ledger) is None

    def test_new_version_is_a_new_key(self, ledger: Any) -> None:
        """A changed version tag of the same path is acquired independently."""
        first = _acquire(ledger)
        second = _acquire(ledger, tag="0xDEF")

        assert first is not None and second is not None
        assert first != second

    def test_find_unknown_key(self, ledger: Any) -> None:
        """find() returns None when no record exists."""
        assert ledger.find(PATH, TAG) is None

    def test_concurrent_acquire_has_single_winner(self, ledger: Any) -> None:
        """Exactly one of many concurrent callers obtains the lease."""
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: _acquire(ledger), range(8)))

        winners = [r for r in results if r is not None]
        assert len(winners) == 1


class TestTransitions:
    """Terminal transitions."""

    def test_mark_processed(self, ledger: Any) -> None:
        """PROCESSING moves to PROCESSED."""
        record_id = _acquire(ledger)

        assert ledger.mark_processed(record_id) is True

        record = ledger.find(PATH, TAG)
        assert record.status is IngestStatus.PROCESSED
        assert record.processed_at is not None
        assert record.error_reason is None

    def test_mark_failed_stores_reason(self, ledger: Any) -> None:
        """PROCESSING moves to FAILED with the reason."""
        record_id = _acquire(ledger)

        assert ledger.mark_failed(record_id, "tenant not found") is True

        record = ledger.find(PATH, TAG)
        assert record.status is IngestStatus.FAILED
        assert record.error_reason == "tenant not found"

    def test_mark_failed_truncates_reason(self, ledger: Any) -> None:
        """Reasons longer than the column are truncated."""
        record_id = _acquire(ledger)

        ledger.mark_failed(record_id, "x" * 5000)

        assert ledger.find(PATH, TAG).error_reason == "x" * MAX_ERROR_REASON_LENGTH

    def test_mark_failed_defaults_reason(self, ledger: Any) -> None:
        """A missing reason is stored as 'Unknown error'."""
        record_id = _acquire(ledger)

        ledger.mark_failed(record_id, None)

        assert ledger.find(PATH, TAG).error_reason == "Unknown error"

    def test_terminal_records_never_transition(self, ledger: Any) -> None:
        """PROCESSED and FAILED are final."""
        processed_id = _acquire(ledger)
        failed_id = _acquire(ledger, tag="0xDEF")
        ledger.mark_processed(processed_id)
        ledger.mark_failed(failed_id, "boom")

        assert ledger.mark_failed(processed_id, "late") is False
        assert ledger.mark_processed(failed_id) is False
        assert ledger.find(PATH, TAG).status is IngestStatus.PROCESSED
        assert ledger.find(PATH, "0xDEF").status is IngestStatus.FAILED

    def test_terminal_record_blocks_reacquire(self, ledger: Any) -> None:
        """A terminal record still owns its key."""
        record_id = _acquire(ledger)
        ledger.mark_processed(record_id)

        assert _acquire(ledger) is None


class TestStaleLeases:
    """Listing of long-running PROCESSING records."""

    def test_lists_only_old_processing_records(self, ledger: Any) -> None:
        """Terminal records and recent leases are not stale."""
        stale_id = _acquire(ledger)
        done_id = _acquire(ledger, tag="0xDEF")
        ledger.mark_processed(done_id)

        now = datetime(2025, 1, 10, 12, 0, tzinfo=UTC)
        stale = ledger.list_stale_leases(now + timedelta(minutes=1))
        recent = ledger.list_stale_leases(now - timedelta(minutes=1))

        assert [r.id for r in stale] == [stale_id]
        assert recent == []


class TestRelationalLedger:
    """Behaviour specific to the SQL ledger."""

    def test_unique_constraint_enforced(self, sqlite_engine: Any) -> None:
        """The table rejects duplicate (blob_path, etag) rows outright."""
        from sqlalchemy.exc import IntegrityError

        insert = text(
            """
            INSERT INTO file_ingestion_control
                (blob_path, etag, file_name, cnpj, reference_date, status, received_at)
            VALUES ('p', 't', 'f', '12345678000195', '2025-01-10', 'PROCESSING',
                    '2025-01-10 12:00:00')
            """
        )
        with sqlite_engine.begin() as conn:
            conn.execute(insert)
        with pytest.raises(IntegrityError), sqlite_engine.begin() as conn:
            conn.execute(insert)

    def test_database_errors_are_wrapped(self, tmp_path: Any) -> None:
        """Driver errors surface as InfrastructureError."""
        engine = create_db_engine(f"sqlite:///{tmp_path / 'empty.db'}")
        ledger = PostgresIngestionControlRepository(engine)

        with pytest.raises(InfrastructureError):
            ledger.find(PATH, TAG)
        engine.dispose()

    def test_factory_selects_implementation(self, sqlite_engine: Any) -> None:
        """An engine selects the SQL ledger, None the in-memory one."""
        assert isinstance(
            get_ingestion_control_repository(sqlite_engine), PostgresIngestionControlRepository
        )
        assert isinstance(
            get_ingestion_control_repository(None), InMemoryIngestionControlRepository
        )
