"""Domain models for pharmacy stock ingestion."""

from pharmastock.models.control_record import ControlRecord, IngestStatus
from pharmastock.models.stock import (
    ClassifiedStockEntry,
    EnrichedStockRow,
    RawStockRow,
    StockCategory,
)

__all__ = [
    "ClassifiedStockEntry",
    "ControlRecord",
    "EnrichedStockRow",
    "IngestStatus",
    "RawStockRow",
    "StockCategory",
]
