"""Stock level classification.

quantity < 10 is CRITICAL, 10..30 is NORMAL, anything above 30 is HIGH.
"""

from __future__ import annotations

from collections.abc import Sequence

from pharmastock.models.stock import ClassifiedStockEntry, EnrichedStockRow, StockCategory

CRITICAL_BELOW = 10
NORMAL_UP_TO = 30


def classify(quantity: int) -> StockCategory:
    """Return the stock category for a non-negative quantity."""
    if quantity < CRITICAL_BELOW:
        return StockCategory.CRITICAL
    if quantity <= NORMAL_UP_TO:
        return StockCategory.NORMAL
    return StockCategory.HIGH


def classify_rows(rows: Sequence[EnrichedStockRow]) -> tuple[ClassifiedStockEntry, ...]:
    """Turn enriched rows into sink entries, preserving order."""
    return tuple(
        ClassifiedStockEntry(
            tenant_id=row.tenant_id,
            product_code=row.product_code,
            quantity=row.quantity,
            category=classify(row.quantity),
        )
        for row in rows
    )
