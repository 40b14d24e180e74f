"""Object storage error types.

All errors are fail-closed: operations that cannot complete safely raise.
``DestinationConflictError`` is the one benign case: the orchestrator treats an
already-existing move target as proof that the file already landed.
"""

from __future__ import annotations


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Attributes:
        message: Human-readable error message.
        name: Blob name associated with the operation (if applicable).
    """

    def __init__(self, message: str, *, name: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.name = name

    def __str__(self) -> str:
        if self.name:
            return f"{self.message} name={self.name}"
        return self.message


class BlobNotFoundError(ObjectStorageError):
    """Raised when a blob does not exist."""

    def __init__(self, message: str = "Blob not found", *, name: str | None = None) -> None:
        super().__init__(message, name=name)


class PathTraversalError(ObjectStorageError):
    """Raised when a blob name contains path traversal sequences or unsafe characters."""

    def __init__(
        self,
        message: str = "Invalid blob name: path traversal detected",
        *,
        name: str | None = None,
    ) -> None:
        super().__init__(message, name=name)


class DestinationConflictError(ObjectStorageError):
    """Raised when a move target already exists.

    Attributes:
        target: Name of the existing target blob.
    """

    def __init__(self, message: str, *, name: str | None = None, target: str) -> None:
        super().__init__(message, name=name)
        self.target = target


class StorageBackendError(ObjectStorageError):
    """Raised when the storage backend cannot complete an operation.

    Attributes:
        cause: Underlying exception, if any.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        name: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, name=name)
        self.cause = cause
