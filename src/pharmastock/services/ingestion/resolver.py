"""Medication code resolution.

Unlike validation, resolution does not stop at the first miss: every distinct
product name is looked up and all unknown names are reported together, so the
uploader sees the complete set of corrections in one failure.
"""

from __future__ import annotations

from collections.abc import Sequence

from pharmastock.errors import FileErrorCode
from pharmastock.models.stock import EnrichedStockRow, RawStockRow
from pharmastock.services.ingestion.ports import MedicationLookup
from pharmastock.services.ingestion.result import StageResult


def resolve_codes(
    rows: Sequence[RawStockRow], lookup: MedicationLookup
) -> StageResult[tuple[EnrichedStockRow, ...]]:
    """Attach the canonical medicine code to every row.

    Args:
        rows: Parsed rows of one file.
        lookup: Reference table of medicine names.

    Returns:
        Enriched rows in input order, or a RESOLUTION failure listing every
        unresolved name in first-seen order.

    Raises:
        InfrastructureError: If the lookup itself fails.
    """
    names = dict.fromkeys(row.product_name.strip() for row in rows)
    codes = {name: lookup.find_code_by_name(name) for name in names}

    missing = [name for name, code in codes.items() if code is None]
    if missing:
        return StageResult.failure(
            FileErrorCode.RESOLUTION,
            f"Medication(s) not found in reference table: {', '.join(missing)}",
        )

    return StageResult.success(
        tuple(
            EnrichedStockRow(
                **row.model_dump(),
                product_code=codes[row.product_name.strip()],
            )
            for row in rows
        )
    )
