"""Stock file ingestion pipeline.

Stages run in a fixed order for each file: context derivation, validation,
parsing, code resolution, classification, then the stock upsert. The
orchestrator and its composition root live in ``orchestrator`` and
``factory``; they are not re-exported here so that persistence adapters can
import the pure stages without a cycle.
"""

from pharmastock.services.ingestion.classifier import classify, classify_rows
from pharmastock.services.ingestion.context import IngestionContext, derive_context
from pharmastock.services.ingestion.parser import parse_rows
from pharmastock.services.ingestion.resolver import resolve_codes
from pharmastock.services.ingestion.result import StageResult
from pharmastock.services.ingestion.validator import validate_csv

__all__ = [
    "IngestionContext",
    "StageResult",
    "classify",
    "classify_rows",
    "derive_context",
    "parse_rows",
    "resolve_codes",
    "validate_csv",
]
