"""Per-file error taxonomy for stock file ingestion.

Business failures flow through the pipeline as ``FileError`` values carried by
``StageResult``. Infrastructure failures are raised by adapters and converted to
``FileError(INFRASTRUCTURE, ...)`` at the orchestrator's per-file boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

MAX_ERROR_REASON_LENGTH = 1000
UNKNOWN_ERROR_REASON = "Unknown error"


class FileErrorCode(StrEnum):
    """Stable codes for per-file failures."""

    PATH_PATTERN = "PATH_PATTERN"
    VALIDATION = "VALIDATION"
    CONSISTENCY = "CONSISTENCY"
    RESOLUTION = "RESOLUTION"
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"
    DESTINATION_CONFLICT = "DESTINATION_CONFLICT"
    INFRASTRUCTURE = "INFRASTRUCTURE"


@dataclass(frozen=True)
class FileError:
    """Structured failure of one pipeline stage for one file.

    Attributes:
        code: Error code from FileErrorCode.
        message: Human-readable description, stored in the control ledger.
    """

    code: FileErrorCode
    message: str

    def reason(self) -> str:
        """Return the message as persisted in the control ledger."""
        return truncate_reason(self.message)


def truncate_reason(message: str | None) -> str:
    """Normalize an error message to the ledger's error_reason column."""
    if not message:
        return UNKNOWN_ERROR_REASON
    return message[:MAX_ERROR_REASON_LENGTH]


class ConfigError(Exception):
    """Raised when environment configuration is missing or invalid."""

    pass


class InfrastructureError(Exception):
    """Raised when the relational store cannot complete an operation.

    Attributes:
        message: Human-readable error message.
        cause: Underlying driver exception, if any.
    """

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class StockEntryValidationError(ValueError):
    """Raised by a stock sink when an entry is not fit to be written."""

    pass
