"""ControlRecord model: the idempotency ledger entry for one file version.

Aligned to the file_ingestion_control table. At most one record exists per
(path, version_tag). PROCESSING is the lease state; PROCESSED and FAILED are
terminal and never transition further.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from pharmastock.errors import MAX_ERROR_REASON_LENGTH


class IngestStatus(StrEnum):
    """Lifecycle status of a control record."""

    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        """Return True for PROCESSED and FAILED."""
        return self is not IngestStatus.PROCESSING


class ControlRecord(BaseModel):
    """Idempotency ledger entry keyed by (path, version_tag).

    Attributes:
        id: Generated identifier returned by lease acquisition.
        path: Full blob name under the inbox prefix.
        version_tag: Object-store version tag (ETag) of the content.
        file_name: Last path segment.
        tenant_id: 14-digit CNPJ derived from the path.
        reference_date: Reporting date derived from the file name.
        status: Current lifecycle status.
        error_reason: Failure description (FAILED only).
        received_at: When the lease was acquired.
        processed_at: When the record reached a terminal status.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: int
    path: Annotated[str, Field(min_length=1)]
    version_tag: Annotated[str, Field(min_length=1)]
    file_name: str
    tenant_id: str
    reference_date: date
    status: IngestStatus
    error_reason: Annotated[str | None, Field(default=None, max_length=MAX_ERROR_REASON_LENGTH)]
    received_at: datetime
    processed_at: datetime | None = None
