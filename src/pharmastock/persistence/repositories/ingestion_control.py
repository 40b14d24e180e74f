"""Ingestion control ledger: the idempotency fence for stock files.

Four operations form the complete fencing protocol:

- ``find(path, version_tag)``: observe the current record, if any
- ``acquire(...)``: insert-if-absent in PROCESSING; returns the new id only when
  the insert took effect. Exclusivity rests on the unique (blob_path, etag)
  constraint, not on application locking.
- ``mark_processed(id)`` / ``mark_failed(id, reason)``: the single transition out
  of PROCESSING. Rows already terminal are left untouched.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Date, DateTime, bindparam, text
from sqlalchemy.exc import SQLAlchemyError

from pharmastock.errors import InfrastructureError, truncate_reason
from pharmastock.models.control_record import ControlRecord, IngestStatus
from pharmastock.persistence.db import begin_conn

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _as_date(value: Any) -> date:
    """Coerce a driver value (date, datetime or ISO string) to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _as_datetime(value: Any) -> datetime | None:
    """Coerce a driver value to an aware UTC datetime."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value))
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


class PostgresIngestionControlRepository:
    """Ledger backed by the file_ingestion_control table.

    Each operation runs in its own short transaction.

    Args:
        engine: SQLAlchemy engine.
        clock: Source of "now" for timestamps.
    """

    _SELECT_SQL = text(
        """
        SELECT id, blob_path, etag, file_name, cnpj, reference_date, status,
               error_reason, received_at, processed_at
        FROM file_ingestion_control
        WHERE blob_path = :blob_path AND etag = :etag
        LIMIT 1
        """
    )

    _ACQUIRE_SQL = text(
        """
        INSERT INTO file_ingestion_control
            (blob_path, etag, file_name, cnpj, reference_date, status, received_at)
        VALUES
            (:blob_path, :etag, :file_name, :cnpj, :reference_date, 'PROCESSING', :received_at)
        ON CONFLICT (blob_path, etag) DO NOTHING
        RETURNING id
        """
    ).bindparams(
        bindparam("reference_date", type_=Date),
        bindparam("received_at", type_=DateTime(timezone=True)),
    )

    _MARK_PROCESSED_SQL = text(
        """
        UPDATE file_ingestion_control
        SET status = 'PROCESSED', processed_at = :processed_at, error_reason = NULL
        WHERE id = :id AND status = 'PROCESSING'
        """
    ).bindparams(bindparam("processed_at", type_=DateTime(timezone=True)))

    _MARK_FAILED_SQL = text(
        """
        UPDATE file_ingestion_control
        SET status = 'FAILED', processed_at = :processed_at, error_reason = :error_reason
        WHERE id = :id AND status = 'PROCESSING'
        """
    ).bindparams(bindparam("processed_at", type_=DateTime(timezone=True)))

    _STALE_SQL = text(
        """
        SELECT id, blob_path, etag, file_name, cnpj, reference_date, status,
               error_reason, received_at, processed_at
        FROM file_ingestion_control
        WHERE status = 'PROCESSING' AND received_at < :cutoff
        ORDER BY received_at ASC
        """
    ).bindparams(bindparam("cutoff", type_=DateTime(timezone=True)))

    def __init__(self, engine: Engine, *, clock: Clock = _utc_now) -> None:
        self._engine = engine
        self._clock = clock

    def find(self, path: str, version_tag: str) -> ControlRecord | None:
        """Look up the record for (path, version_tag).

        Raises:
            InfrastructureError: If the query fails.
        """
        try:
            with begin_conn(self._engine) as conn:
                row = conn.execute(
                    self._SELECT_SQL, {"blob_path": path, "etag": version_tag}
                ).fetchone()
        except SQLAlchemyError as e:
            raise InfrastructureError(
                "Failed to query ingestion control by blob_path and etag", cause=e
            ) from e

        if row is None:
            return None
        return self._row_to_record(row)

    def acquire(
        self,
        path: str,
        version_tag: str,
        tenant_id: str,
        file_name: str,
        reference_date: date,
    ) -> int | None:
        """Insert a PROCESSING record unless one exists for (path, version_tag).

        Returns:
            The generated id, or None if another caller holds the key.

        Raises:
            InfrastructureError: If the insert fails for any other reason.
        """
        try:
            with begin_conn(self._engine) as conn:
                row = conn.execute(
                    self._ACQUIRE_SQL,
                    {
                        "blob_path": path,
                        "etag": version_tag,
                        "file_name": file_name,
                        "cnpj": tenant_id,
                        "reference_date": reference_date,
                        "received_at": self._clock(),
                    },
                ).fetchone()
        except SQLAlchemyError as e:
            raise InfrastructureError(
                "Failed to create ingestion control record (PROCESSING)", cause=e
            ) from e

        if row is None:
            logger.debug("Lease already held: path=%s etag=%s", path, version_tag)
            return None
        return int(row.id)

    def mark_processed(self, record_id: int) -> bool:
        """Transition a lease to PROCESSED.

        Returns:
            True if the record was in PROCESSING and is now PROCESSED.

        Raises:
            InfrastructureError: If the update fails.
        """
        try:
            with begin_conn(self._engine) as conn:
                result = conn.execute(
                    self._MARK_PROCESSED_SQL,
                    {"id": record_id, "processed_at": self._clock()},
                )
        except SQLAlchemyError as e:
            raise InfrastructureError(
                f"Failed to mark ingestion as PROCESSED (id={record_id})", cause=e
            ) from e
        return result.rowcount == 1

    def mark_failed(self, record_id: int, reason: str | None) -> bool:
        """Transition a lease to FAILED with a truncated reason.

        Returns:
            True if the record was in PROCESSING and is now FAILED.

        Raises:
            InfrastructureError: If the update fails.
        """
        try:
            with begin_conn(self._engine) as conn:
                result = conn.execute(
                    self._MARK_FAILED_SQL,
                    {
                        "id": record_id,
                        "processed_at": self._clock(),
                        "error_reason": truncate_reason(reason),
                    },
                )
        except SQLAlchemyError as e:
            raise InfrastructureError(
                f"Failed to mark ingestion as FAILED (id={record_id})", cause=e
            ) from e
        return result.rowcount == 1

    def list_stale_leases(self, older_than: datetime) -> list[ControlRecord]:
        """Return PROCESSING records acquired before older_than, oldest first."""
        try:
            with begin_conn(self._engine) as conn:
                rows = conn.execute(self._STALE_SQL, {"cutoff": older_than}).fetchall()
        except SQLAlchemyError as e:
            raise InfrastructureError("Failed to query stale ingestion leases", cause=e) from e
        return [self._row_to_record(row) for row in rows]

    def _row_to_record(self, row: Any) -> ControlRecord:
        """Convert database row to ControlRecord."""
        return ControlRecord(
            id=int(row.id),
            path=row.blob_path,
            version_tag=row.etag,
            file_name=row.file_name,
            tenant_id=row.cnpj,
            reference_date=_as_date(row.reference_date),
            status=IngestStatus(row.status),
            error_reason=row.error_reason,
            received_at=_as_datetime(row.received_at),
            processed_at=_as_datetime(row.processed_at),
        )


class InMemoryIngestionControlRepository:
    """In-memory ledger used when no database is configured.

    ``acquire`` is an atomic compare-and-set on the (path, version_tag) key
    under a lock, mirroring the unique constraint of the relational table.
    """

    def __init__(self, *, clock: Clock = _utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._by_key: dict[tuple[str, str], ControlRecord] = {}
        self._key_by_id: dict[int, tuple[str, str]] = {}
        self._next_id = 1

    def find(self, path: str, version_tag: str) -> ControlRecord | None:
        """Look up the record for (path, version_tag)."""
        with self._lock:
            return self._by_key.get((path, version_tag))

    def acquire(
        self,
        path: str,
        version_tag: str,
        tenant_id: str,
        file_name: str,
        reference_date: date,
    ) -> int | None:
        """Insert a PROCESSING record unless one exists for the key."""
        key = (path, version_tag)
        with self._lock:
            if key in self._by_key:
                return None
            record_id = self._next_id
            self._next_id += 1
            self._by_key[key] = ControlRecord(
                id=record_id,
                path=path,
                version_tag=version_tag,
                file_name=file_name,
                tenant_id=tenant_id,
                reference_date=reference_date,
                status=IngestStatus.PROCESSING,
                received_at=self._clock(),
            )
            self._key_by_id[record_id] = key
            return record_id

    def mark_processed(self, record_id: int) -> bool:
        """Transition a lease to PROCESSED."""
        return self._transition(record_id, IngestStatus.PROCESSED, None)

    def mark_failed(self, record_id: int, reason: str | None) -> bool:
        """Transition a lease to FAILED with a truncated reason."""
        return self._transition(record_id, IngestStatus.FAILED, truncate_reason(reason))

    def list_stale_leases(self, older_than: datetime) -> list[ControlRecord]:
        """Return PROCESSING records acquired before older_than, oldest first."""
        with self._lock:
            stale = [
                r
                for r in self._by_key.values()
                if r.status is IngestStatus.PROCESSING and r.received_at < older_than
            ]
        return sorted(stale, key=lambda r: r.received_at)

    def records(self) -> list[ControlRecord]:
        """Return every record ordered by id."""
        with self._lock:
            return sorted(self._by_key.values(), key=lambda r: r.id)

    def _transition(self, record_id: int, status: IngestStatus, reason: str | None) -> bool:
        with self._lock:
            key = self._key_by_id.get(record_id)
            if key is None:
                return False
            current = self._by_key[key]
            if current.status.is_terminal:
                return False
            self._by_key[key] = current.model_copy(
                update={
                    "status": status,
                    "error_reason": reason,
                    "processed_at": self._clock(),
                }
            )
            return True


def get_ingestion_control_repository(
    engine: Engine | None,
    *,
    clock: Clock = _utc_now,
) -> PostgresIngestionControlRepository | InMemoryIngestionControlRepository:
    """Factory to get appropriate ledger repository.

    Returns the relational repository when an engine is supplied, otherwise
    the in-memory fallback.
    """
    if engine is not None:
        return PostgresIngestionControlRepository(engine, clock=clock)
    return InMemoryIngestionControlRepository(clock=clock)
