"""Stock sink: atomic batch upsert into pharmacy_medicine_stock.

One transaction per file. The conflict key is (pharmacy_id, medicine_code);
on conflict quantity, status and timestamp are overwritten (last write wins).
Every entry is validated before anything is written, and any failure rolls
the whole batch back.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import SQLAlchemyError

from pharmastock.errors import InfrastructureError, StockEntryValidationError
from pharmastock.models.stock import ClassifiedStockEntry
from pharmastock.persistence.db import begin_conn
from pharmastock.services.ingestion.classifier import classify

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def validate_entry(entry: ClassifiedStockEntry) -> None:
    """Check required fields and that the category matches the quantity.

    Raises:
        StockEntryValidationError: On the first violated rule.
    """
    if not entry.tenant_id.strip():
        raise StockEntryValidationError("cnpj is required to upsert stock")
    if not entry.product_code.strip():
        raise StockEntryValidationError("medicine code is required to upsert stock")
    if not entry.category:
        raise StockEntryValidationError("status is required to upsert stock")
    expected = classify(entry.quantity)
    if entry.category != expected:
        raise StockEntryValidationError(
            f"status {entry.category} does not match quantity {entry.quantity} "
            f"(expected {expected}) for medicine {entry.product_code}"
        )


class PostgresStockRepository:
    """Stock sink backed by pharmacy_medicine_stock."""

    _UPSERT_SQL = text(
        """
        INSERT INTO pharmacy_medicine_stock
            (quantity, stock_status, updated_at, medicine_code, pharmacy_id)
        VALUES
            (:quantity, :stock_status, :updated_at, :medicine_code, :pharmacy_id)
        ON CONFLICT (pharmacy_id, medicine_code)
        DO UPDATE SET
            quantity = EXCLUDED.quantity,
            stock_status = EXCLUDED.stock_status,
            updated_at = EXCLUDED.updated_at
        """
    ).bindparams(bindparam("updated_at", type_=DateTime(timezone=True)))

    def __init__(self, engine: Engine, *, clock: Callable[[], datetime] | None = None) -> None:
        self._engine = engine
        self._clock = clock or (lambda: datetime.now(UTC))

    def upsert_all(self, entries: Sequence[ClassifiedStockEntry]) -> int:
        """Upsert every entry in one transaction.

        Returns:
            Number of entries written.

        Raises:
            StockEntryValidationError: If any entry is invalid (nothing written).
            InfrastructureError: If the batch fails (rolled back).
        """
        if not entries:
            return 0

        for entry in entries:
            validate_entry(entry)

        now = self._clock()
        params = [
            {
                "quantity": entry.quantity,
                "stock_status": entry.category.value,
                "updated_at": now,
                "medicine_code": entry.product_code,
                "pharmacy_id": entry.tenant_id,
            }
            for entry in entries
        ]

        try:
            with begin_conn(self._engine) as conn:
                conn.execute(self._UPSERT_SQL, params)
        except SQLAlchemyError as e:
            raise InfrastructureError("Failed to upsert pharmacy stock batch", cause=e) from e

        logger.debug("Upserted %d stock entries", len(params))
        return len(params)


class InMemoryStockRepository:
    """In-memory stock sink used when no database is configured.

    Attributes:
        upsert_calls: Number of successful batches applied.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[tuple[str, str], ClassifiedStockEntry] = {}
        self.upsert_calls = 0

    def upsert_all(self, entries: Sequence[ClassifiedStockEntry]) -> int:
        """Validate all entries, then apply them together."""
        if not entries:
            return 0
        for entry in entries:
            validate_entry(entry)
        with self._lock:
            self._rows.update({(e.tenant_id, e.product_code): e for e in entries})
            self.upsert_calls += 1
        return len(entries)

    def get(self, tenant_id: str, product_code: str) -> ClassifiedStockEntry | None:
        """Return the stored entry for (tenant, product), if any."""
        with self._lock:
            return self._rows.get((tenant_id, product_code))

    def all(self) -> list[ClassifiedStockEntry]:
        """Return every stored entry ordered by key."""
        with self._lock:
            return [self._rows[k] for k in sorted(self._rows)]


def get_stock_repository(
    engine: Engine | None,
) -> PostgresStockRepository | InMemoryStockRepository:
    """Factory to get appropriate stock sink."""
    if engine is not None:
        return PostgresStockRepository(engine)
    return InMemoryStockRepository()
