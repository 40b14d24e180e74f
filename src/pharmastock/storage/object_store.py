"""Blob storage interface definition.

Provides the BlobStore contract that all storage backends must implement.
Backends expose simple synchronous primitives; moving between areas is
composed from them by ``InboxLayout``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol

from pharmastock.storage.models import BlobRef


class CopyPoller(Protocol):
    """Handle for an in-flight server-side copy."""

    def wait_for_completion(self, timeout: float | None = None) -> None:
        """Block until the copy finishes.

        Raises:
            StorageBackendError: If the copy fails or does not finish in time.
        """
        ...


class BlobStore(ABC):
    """Abstract base class for blob storage backends.

    Implementations:
    - FilesystemBlobStore: Local filesystem (dev/test)
    - AzureBlobStore: Azure Blob Storage container (production)
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability."""
        ...

    @abstractmethod
    def list_blobs(self, prefix: str) -> list[BlobRef]:
        """List blobs whose name starts with prefix.

        Args:
            prefix: Name prefix (e.g. "inbox/"). Empty string lists everything.

        Returns:
            BlobRef entries; order is backend-defined.

        Raises:
            StorageBackendError: If the backend cannot complete the listing.
        """
        ...

    @abstractmethod
    def download(self, name: str) -> bytes:
        """Return the full content of a blob.

        Raises:
            BlobNotFoundError: If the blob does not exist.
            PathTraversalError: If the name is unsafe.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def upload(self, name: str, data: bytes) -> BlobRef:
        """Create or overwrite a blob.

        Raises:
            PathTraversalError: If the name is unsafe.
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Return True if the blob exists."""
        ...

    @abstractmethod
    def begin_copy(self, source: str, target: str) -> CopyPoller:
        """Start copying source to target.

        Raises:
            BlobNotFoundError: If the source does not exist.
            StorageBackendError: If the copy cannot be started.
        """
        ...

    @abstractmethod
    def delete(self, name: str) -> None:
        """Delete a blob.

        Raises:
            BlobNotFoundError: If the blob does not exist.
            StorageBackendError: If the backend cannot complete the deletion.
        """
        ...
