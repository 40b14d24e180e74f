"""Batch orchestration of stock file ingestion.

One ``run()`` lists the inbox, keeps files older than the minimum age, and
drives each of them, oldest first and strictly sequentially, through:

    derive context -> consult ledger -> acquire lease -> verify tenant ->
    download -> validate -> parse -> resolve -> classify -> upsert ->
    mark PROCESSED -> move to processed area

Any per-file failure short-circuits to: mark FAILED (if a lease is held) ->
best-effort move to the error area -> next file. The batch never aborts
because of a single file.

The control ledger is the source of truth. A file whose (path, version_tag)
already has a terminal record is only moved to the matching area; its
content is never downloaded again.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from opentelemetry import trace

from pharmastock.errors import FileError, FileErrorCode, StockEntryValidationError
from pharmastock.models.control_record import ControlRecord, IngestStatus
from pharmastock.models.stock import ClassifiedStockEntry
from pharmastock.services.ingestion.classifier import classify_rows
from pharmastock.services.ingestion.context import IngestionContext, derive_context
from pharmastock.services.ingestion.parser import parse_rows
from pharmastock.services.ingestion.ports import (
    IngestionControlLedger,
    MedicationLookup,
    StockSink,
    TenantRegistry,
)
from pharmastock.services.ingestion.resolver import resolve_codes
from pharmastock.services.ingestion.result import StageResult
from pharmastock.services.ingestion.validator import validate_csv
from pharmastock.storage.errors import DestinationConflictError
from pharmastock.storage.layout import InboxLayout
from pharmastock.storage.models import BlobRef

logger = logging.getLogger(__name__)

TENANT_NOT_FOUND_REASON = "tenant not found"


class FileOutcome(StrEnum):
    """How one eligible file was counted."""

    PROCESSED = "processed"
    FAILED = "failed"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class RunSummary:
    """Aggregate counts of one run.

    Individual failure reasons live in the control ledger, not here.
    """

    eligible: int
    processed: int
    failed: int
    duplicate: int

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[FileOutcome]) -> RunSummary:
        counts = Counter(outcomes)
        return cls(
            eligible=sum(counts.values()),
            processed=counts[FileOutcome.PROCESSED],
            failed=counts[FileOutcome.FAILED],
            duplicate=counts[FileOutcome.DUPLICATE],
        )

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for JSON serialization."""
        return {
            "eligible": self.eligible,
            "processed": self.processed,
            "failed": self.failed,
            "duplicate": self.duplicate,
        }


class StockIngestionOrchestrator:
    """Drives the per-file pipeline and the batch loop.

    Args:
        layout: Inbox / processed / error areas of the blob store.
        control: Idempotency ledger.
        tenants: Registry of known pharmacies.
        medications: Medicine name to code lookup.
        sink: Stock writer.
        min_file_age_minutes: Files modified more recently are left for a later run.
        clock: Source of "now".
        stale_lease_minutes: When set, PROCESSING leases older than this are
            reported as warnings at the end of each run. They are never
            re-acquired automatically.
    """

    def __init__(
        self,
        layout: InboxLayout,
        control: IngestionControlLedger,
        tenants: TenantRegistry,
        medications: MedicationLookup,
        sink: StockSink,
        *,
        min_file_age_minutes: int = 15,
        clock: Callable[[], datetime] | None = None,
        stale_lease_minutes: int | None = None,
    ) -> None:
        self._layout = layout
        self._control = control
        self._tenants = tenants
        self._medications = medications
        self._sink = sink
        self._min_file_age = timedelta(minutes=min_file_age_minutes)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._stale_lease_age = (
            timedelta(minutes=stale_lease_minutes) if stale_lease_minutes else None
        )
        self._tracer = trace.get_tracer("pharmastock.ingestion")

    def run(self) -> RunSummary:
        """Process every eligible inbox file once.

        Raises:
            StorageBackendError: If the inbox cannot be listed.
        """
        now = self._clock()
        eligible = self.eligible_blobs(now - self._min_file_age)
        logger.info("Ingestion run started: %d eligible file(s)", len(eligible))

        summary = RunSummary.from_outcomes(self.process_blob(blob) for blob in eligible)

        self._report_stale_leases(now)
        logger.info(
            "Run finished: eligible=%d, processed=%d, failed=%d, duplicates=%d",
            summary.eligible,
            summary.processed,
            summary.failed,
            summary.duplicate,
        )
        return summary

    def eligible_blobs(self, cutoff: datetime) -> list[BlobRef]:
        """Return inbox blobs last modified before cutoff, oldest first."""
        blobs = self._layout.list_inbox()
        return sorted(
            (b for b in blobs if b.last_modified < cutoff),
            key=lambda b: b.last_modified,
        )

    def process_blob(self, blob: BlobRef) -> FileOutcome:
        """Run one inbox file through the pipeline and return how it counts."""
        with self._tracer.start_as_current_span("pharmastock.ingest_file") as span:
            outcome = self._process(blob)
            span.set_attribute("pharmastock.outcome", outcome.value)
        return outcome

    def _process(self, blob: BlobRef) -> FileOutcome:
        derived = derive_context(blob, self._layout.inbox_prefix)
        if derived.error is not None:
            logger.error("Rejected blob=%s: %s", blob.name, derived.error.message)
            self._move_to_error(blob.name)
            return FileOutcome.FAILED
        ctx = derived.unwrap()

        try:
            existing = self._control.find(ctx.path, ctx.version_tag)
            if existing is not None:
                return self._reconcile(ctx, existing)

            lease_id = self._control.acquire(
                ctx.path, ctx.version_tag, ctx.tenant_id, ctx.file_name, ctx.reference_date
            )
        except Exception as e:
            # No lease exists, so there is nothing to mark.
            logger.error(
                "Control ledger unavailable for blob=%s: %s", ctx.path, e, exc_info=True
            )
            self._move_to_error(ctx.path)
            return FileOutcome.FAILED

        if lease_id is None:
            logger.warning(
                "Lease for blob=%s etag=%s taken by a concurrent run", ctx.path, ctx.version_tag
            )
            return FileOutcome.DUPLICATE

        return self._ingest(ctx, lease_id)

    def _reconcile(self, ctx: IngestionContext, record: ControlRecord) -> FileOutcome:
        """Settle a file that already has a ledger record, without reprocessing it."""
        if record.status is IngestStatus.PROCESSED:
            logger.info("Already processed, moving to processed area: blob=%s", ctx.path)
            self._move_to_processed(ctx.path)
        elif record.status is IngestStatus.FAILED:
            logger.info("Already failed, moving to error area: blob=%s", ctx.path)
            self._move_to_error(ctx.path)
        else:
            logger.info("In flight since %s, skipping: blob=%s", record.received_at, ctx.path)
        return FileOutcome.DUPLICATE

    def _ingest(self, ctx: IngestionContext, lease_id: int) -> FileOutcome:
        try:
            result = self._apply(ctx)
        except Exception as e:
            logger.error("Ingestion failed for blob=%s: %s", ctx.path, e, exc_info=True)
            result = StageResult.failure(FileErrorCode.INFRASTRUCTURE, str(e))

        if result.error is not None:
            self._fail(ctx, lease_id, result.error)
            return FileOutcome.FAILED

        try:
            self._control.mark_processed(lease_id)
        except Exception as e:
            # Stock is committed; the lease stays PROCESSING and is reported as stale.
            logger.error(
                "Failed to mark lease id=%d PROCESSED for blob=%s: %s",
                lease_id,
                ctx.path,
                e,
                exc_info=True,
            )
            return FileOutcome.FAILED

        try:
            self._layout.move_to_processed(ctx.path)
        except DestinationConflictError as e:
            logger.warning("Duplicate target detected (not moving): blob=%s reason=%s", ctx.path, e)
            return FileOutcome.DUPLICATE
        except Exception as e:
            logger.error(
                "Failed moving blob to processed area: blob=%s error=%s", ctx.path, e
            )

        logger.info("Processed blob=%s rows=%s", ctx.path, result.value)
        return FileOutcome.PROCESSED

    def _apply(self, ctx: IngestionContext) -> StageResult[Any]:
        """Run the business stages for one leased file.

        Returns:
            Number of stock entries written, or the FileError that stopped the file.
        """
        if not self._tenants.exists(ctx.tenant_id):
            return StageResult.failure(FileErrorCode.TENANT_NOT_FOUND, TENANT_NOT_FOUND_REASON)

        data = self._layout.download(ctx.path)
        return (
            validate_csv(data, ctx.file_name)
            .then(lambda _: parse_rows(data, ctx))
            .then(lambda rows: resolve_codes(rows, self._medications))
            .map(classify_rows)
            .then(self._upsert)
        )

    def _upsert(self, entries: Sequence[ClassifiedStockEntry]) -> StageResult[int]:
        try:
            return StageResult.success(self._sink.upsert_all(entries))
        except StockEntryValidationError as e:
            return StageResult.failure(FileErrorCode.VALIDATION, str(e))

    def _fail(self, ctx: IngestionContext, lease_id: int, error: FileError) -> None:
        logger.error(
            "Failed processing blob=%s code=%s error=%s", ctx.path, error.code, error.message
        )
        try:
            self._control.mark_failed(lease_id, error.reason())
        except Exception as e:
            logger.error(
                "Failed to mark lease id=%d FAILED for blob=%s: %s",
                lease_id,
                ctx.path,
                e,
                exc_info=True,
            )
        self._move_to_error(ctx.path)

    def _move_to_processed(self, name: str) -> None:
        try:
            self._layout.move_to_processed(name)
        except DestinationConflictError as e:
            logger.warning("Duplicate target detected (not moving): blob=%s reason=%s", name, e)
        except Exception as e:
            logger.error("Failed moving blob to processed area: blob=%s error=%s", name, e)

    def _move_to_error(self, name: str) -> None:
        try:
            self._layout.move_to_error(name)
        except DestinationConflictError as e:
            logger.warning("Error-area target already exists: blob=%s reason=%s", name, e)
        except Exception as e:
            logger.error("Failed moving blob to error area: blob=%s error=%s", name, e)

    def _report_stale_leases(self, now: datetime) -> None:
        if self._stale_lease_age is None:
            return
        try:
            stale = self._control.list_stale_leases(now - self._stale_lease_age)
        except Exception as e:
            logger.error("Failed to query stale leases: %s", e)
            return
        for record in stale:
            logger.warning(
                "Lease id=%d for blob=%s has been PROCESSING since %s; it needs manual recovery",
                record.id,
                record.path,
                record.received_at.isoformat(),
            )
