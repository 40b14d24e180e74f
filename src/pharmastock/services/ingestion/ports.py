"""Collaborator interfaces of the ingestion orchestrator.

Persistence adapters in ``pharmastock.persistence.repositories`` satisfy these
structurally; tests may pass any object with matching methods.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from typing import Protocol

from pharmastock.models.control_record import ControlRecord
from pharmastock.models.stock import ClassifiedStockEntry


class IngestionControlLedger(Protocol):
    """Idempotency ledger keyed by (path, version_tag)."""

    def find(self, path: str, version_tag: str) -> ControlRecord | None: ...

    def acquire(
        self,
        path: str,
        version_tag: str,
        tenant_id: str,
        file_name: str,
        reference_date: date,
    ) -> int | None: ...

    def mark_processed(self, record_id: int) -> bool: ...

    def mark_failed(self, record_id: int, reason: str | None) -> bool: ...

    def list_stale_leases(self, older_than: datetime) -> list[ControlRecord]: ...


class TenantRegistry(Protocol):
    """Registry of known pharmacies."""

    def exists(self, cnpj: str) -> bool: ...


class MedicationLookup(Protocol):
    """Reference table from medicine name to canonical code."""

    def find_code_by_name(self, medicine_name: str) -> str | None: ...


class StockSink(Protocol):
    """Atomic batch writer of classified stock entries.

    ``upsert_all`` raises StockEntryValidationError for entries that must not be
    written; any other exception is an infrastructure failure.
    """

    def upsert_all(self, entries: Sequence[ClassifiedStockEntry]) -> int: ...
