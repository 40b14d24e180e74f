"""Stock row models flowing through one file's pipeline.

RawStockRow -> EnrichedStockRow (code resolved) -> ClassifiedStockEntry (sink input).
All are immutable and scoped to the processing of a single file.
"""

from __future__ import annotations

from datetime import date
from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class StockCategory(StrEnum):
    """Stock level category stored in pharmacy_medicine_stock.stock_status."""

    CRITICAL = "CRITICAL"
    NORMAL = "NORMAL"
    HIGH = "HIGH"


class RawStockRow(BaseModel):
    """One parsed CSV data line."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tenant_id: Annotated[str, Field(pattern=r"^\d{14}$")]
    product_name: Annotated[str, Field(min_length=1)]
    quantity: Annotated[int, Field(ge=0)]
    reference_date: date


class EnrichedStockRow(RawStockRow):
    """Parsed row with its canonical medicine code."""

    product_code: Annotated[str, Field(min_length=1)]


class ClassifiedStockEntry(BaseModel):
    """Row ready for the stock sink.

    Attributes:
        tenant_id: Pharmacy CNPJ (conflict key part 1).
        product_code: Canonical medicine code (conflict key part 2).
        quantity: Units in stock.
        category: Stock level derived from quantity.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tenant_id: str
    product_code: str
    quantity: Annotated[int, Field(ge=0)]
    category: StockCategory
