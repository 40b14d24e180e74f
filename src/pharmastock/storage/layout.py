"""Inbox / processed / error area layout on top of a BlobStore.

Blob names follow ``<area prefix><tenant_id>/<file_name>``. Moving a blob
between areas is copy, wait for the copy, then delete the source. The move is
not atomic: a crash between copy and delete leaves both blobs, which the
orchestrator resolves on a later run from the control ledger.
"""

from __future__ import annotations

import logging

from pharmastock.storage.errors import (
    DestinationConflictError,
    StorageBackendError,
)
from pharmastock.storage.models import BlobRef
from pharmastock.storage.object_store import BlobStore

logger = logging.getLogger(__name__)

DEFAULT_INBOX_PREFIX = "inbox/"
DEFAULT_PROCESSED_PREFIX = "processed/"
DEFAULT_ERROR_PREFIX = "error/"
DEFAULT_COPY_TIMEOUT_SECONDS = 60.0


def normalize_prefix(prefix: str | None) -> str:
    """Return prefix with a trailing slash; blank prefixes become empty."""
    if prefix is None or not prefix.strip():
        return ""
    prefix = prefix.strip()
    return prefix if prefix.endswith("/") else prefix + "/"


class InboxLayout:
    """Area-aware facade over a BlobStore.

    Args:
        store: Backend performing the primitive operations.
        inbox_prefix: Prefix of the area tenants drop files into.
        processed_prefix: Prefix of the area for successfully applied files.
        error_prefix: Prefix of the area for rejected files.
        copy_timeout_seconds: Upper bound for waiting on a copy.
    """

    def __init__(
        self,
        store: BlobStore,
        *,
        inbox_prefix: str = DEFAULT_INBOX_PREFIX,
        processed_prefix: str = DEFAULT_PROCESSED_PREFIX,
        error_prefix: str = DEFAULT_ERROR_PREFIX,
        copy_timeout_seconds: float = DEFAULT_COPY_TIMEOUT_SECONDS,
    ) -> None:
        self._store = store
        self._inbox_prefix = normalize_prefix(inbox_prefix)
        self._processed_prefix = normalize_prefix(processed_prefix)
        self._error_prefix = normalize_prefix(error_prefix)
        self._copy_timeout_seconds = copy_timeout_seconds

    @property
    def inbox_prefix(self) -> str:
        """Return the normalized inbox prefix."""
        return self._inbox_prefix

    @property
    def store(self) -> BlobStore:
        """Return the underlying blob store."""
        return self._store

    def list_inbox(self) -> list[BlobRef]:
        """List every blob under the inbox prefix."""
        return self._store.list_blobs(self._inbox_prefix)

    def download(self, name: str) -> bytes:
        """Download a blob's content."""
        return self._store.download(name)

    def processed_name(self, inbox_name: str) -> str:
        """Return the processed-area name for an inbox blob."""
        return self._processed_prefix + self._relative(inbox_name)

    def error_name(self, inbox_name: str) -> str:
        """Return the error-area name for an inbox blob."""
        return self._error_prefix + self._relative(inbox_name)

    def move_to_processed(self, inbox_name: str) -> str:
        """Move an inbox blob to the processed area.

        Returns:
            The target blob name.

        Raises:
            DestinationConflictError: If the target already exists.
            StorageBackendError: If the blob is outside the inbox or the move fails.
        """
        target = self.processed_name(inbox_name)
        self._move(inbox_name, target)
        return target

    def move_to_error(self, inbox_name: str) -> str:
        """Move an inbox blob to the error area.

        Returns:
            The target blob name.

        Raises:
            DestinationConflictError: If the target already exists.
            StorageBackendError: If the blob is outside the inbox or the move fails.
        """
        target = self.error_name(inbox_name)
        self._move(inbox_name, target)
        return target

    def _relative(self, inbox_name: str) -> str:
        """Strip the inbox prefix from a blob name."""
        if not inbox_name.startswith(self._inbox_prefix):
            raise StorageBackendError(
                message=f"Blob is not under inbox prefix: {inbox_name}",
                name=inbox_name,
            )
        return inbox_name[len(self._inbox_prefix) :]

    def _move(self, source: str, target: str) -> None:
        """Copy source to target, wait, then delete source."""
        try:
            if self._store.exists(target):
                raise DestinationConflictError(
                    f"Target blob already exists: {target}",
                    name=source,
                    target=target,
                )
            poller = self._store.begin_copy(source, target)
            poller.wait_for_completion(self._copy_timeout_seconds)
            self._store.delete(source)
        except DestinationConflictError:
            raise
        except Exception as e:
            raise StorageBackendError(
                message=f"Failed to move blob from {source} to {target}: {e}",
                name=source,
                cause=e,
            ) from e

        logger.debug("Moved blob %s -> %s", source, target)
