"""Azure Blob Storage backend.

Production backend for the stock file inbox. One store maps to one container;
blob names are used verbatim. Copies are server-side and asynchronous: the
poller returned by ``begin_copy`` checks the target's copy status until it
leaves "pending".

Environment Variables:
    PHARMASTOCK_BLOB_CONNECTION_STRING: Storage account connection string.
        When set, the factory uses this backend instead of the filesystem.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobClient, ContainerClient

from pharmastock.storage.errors import BlobNotFoundError, StorageBackendError
from pharmastock.storage.models import BlobRef
from pharmastock.storage.object_store import BlobStore
from pharmastock.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

BLOB_CONNECTION_STRING_ENV = "PHARMASTOCK_BLOB_CONNECTION_STRING"
DEFAULT_POLL_INTERVAL_SECONDS = 1.0

COPY_PENDING = "pending"
COPY_SUCCESS = "success"


class AzureCopyPoller:
    """Waits for a server-side copy into one target blob."""

    def __init__(
        self,
        target: BlobClient,
        copy_id: str | None,
        status: str | None,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._target = target
        self._copy_id = copy_id
        self._status = status
        self._poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep
        self._monotonic = monotonic

    @property
    def status(self) -> str | None:
        return self._status

    def wait_for_completion(self, timeout: float | None = None) -> None:
        """Poll the target until the copy succeeds.

        A copy still pending at the deadline is aborted.

        Raises:
            StorageBackendError: If the copy fails, is aborted, or times out.
        """
        deadline = None if timeout is None else self._monotonic() + timeout
        while self._status == COPY_PENDING:
            if deadline is not None and self._monotonic() >= deadline:
                self._abort()
                raise StorageBackendError(
                    message=f"Copy did not complete within {timeout}s",
                    name=self._target.blob_name,
                )
            self._sleep(self._poll_interval_seconds)
            self._status = self._poll()

        if self._status != COPY_SUCCESS:
            raise StorageBackendError(
                message=f"Copy ended with status {self._status}",
                name=self._target.blob_name,
            )

    def _poll(self) -> str | None:
        try:
            return self._target.get_blob_properties().copy.status
        except AzureError as e:
            raise StorageBackendError(
                message=f"Failed to read copy status: {e}",
                name=self._target.blob_name,
                cause=e,
            ) from e

    def _abort(self) -> None:
        if self._copy_id is None:
            return
        try:
            self._target.abort_copy(self._copy_id)
        except AzureError as e:
            logger.warning("Failed to abort copy to %s: %s", self._target.blob_name, e)


class AzureBlobStore(BlobStore):
    """Blob store backed by one Azure Storage container.

    Args:
        container: Container client; tests pass an in-memory fake.
        poll_interval_seconds: Delay between copy status checks.
        sleep: Sleep function used by copy pollers.
        monotonic: Clock used for copy timeouts.
    """

    def __init__(
        self,
        container: ContainerClient,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._container = container
        self._poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep
        self._monotonic = monotonic

    @classmethod
    def from_connection_string(cls, connection_string: str, container: str) -> AzureBlobStore:
        """Create a store for container in the account named by connection_string."""
        client = ContainerClient.from_connection_string(
            connection_string, container_name=container
        )
        logger.debug("AzureBlobStore initialized for container=%s", container)
        return cls(client)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "azure_blob"

    @traced_storage_operation("list")
    def list_blobs(self, prefix: str) -> list[BlobRef]:
        """List blobs whose name starts with prefix.

        Items without a last-modified timestamp are skipped.
        """
        try:
            items = list(self._container.list_blobs(name_starts_with=prefix or None))
        except AzureError as e:
            raise StorageBackendError(
                message=f"Failed to list blobs: {e}", name=prefix, cause=e
            ) from e

        return [
            BlobRef(name=item.name, version_tag=item.etag, last_modified=item.last_modified)
            for item in items
            if item.last_modified is not None
        ]

    @traced_storage_operation("download")
    def download(self, name: str) -> bytes:
        """Return the full content of a blob."""
        try:
            return self._container.get_blob_client(name).download_blob().readall()
        except ResourceNotFoundError as e:
            raise BlobNotFoundError(name=name) from e
        except AzureError as e:
            raise StorageBackendError(
                message=f"Failed to download blob: {e}", name=name, cause=e
            ) from e

    @traced_storage_operation("upload")
    def upload(self, name: str, data: bytes) -> BlobRef:
        """Create or overwrite a blob."""
        try:
            result: dict[str, Any] = self._container.get_blob_client(name).upload_blob(
                data, overwrite=True
            )
        except AzureError as e:
            raise StorageBackendError(
                message=f"Failed to upload blob: {e}", name=name, cause=e
            ) from e
        return BlobRef(name=name, version_tag=result["etag"], last_modified=result["last_modified"])

    def exists(self, name: str) -> bool:
        """Return True if the blob exists."""
        try:
            return bool(self._container.get_blob_client(name).exists())
        except AzureError as e:
            raise StorageBackendError(
                message=f"Failed to check blob existence: {e}", name=name, cause=e
            ) from e

    @traced_storage_operation("begin_copy")
    def begin_copy(self, source: str, target: str) -> AzureCopyPoller:
        """Start a server-side copy of source to target."""
        source_client = self._container.get_blob_client(source)
        target_client = self._container.get_blob_client(target)
        try:
            props = target_client.start_copy_from_url(source_client.url)
        except ResourceNotFoundError as e:
            raise BlobNotFoundError(name=source) from e
        except AzureError as e:
            raise StorageBackendError(
                message=f"Failed to start copy to {target}: {e}", name=source, cause=e
            ) from e

        logger.debug("Started copy: %s -> %s status=%s", source, target, props.get("copy_status"))
        return AzureCopyPoller(
            target_client,
            props.get("copy_id"),
            props.get("copy_status"),
            poll_interval_seconds=self._poll_interval_seconds,
            sleep=self._sleep,
            monotonic=self._monotonic,
        )

    @traced_storage_operation("delete")
    def delete(self, name: str) -> None:
        """Delete a blob."""
        try:
            self._container.get_blob_client(name).delete_blob()
        except ResourceNotFoundError as e:
            raise BlobNotFoundError(name=name) from e
        except AzureError as e:
            raise StorageBackendError(
                message=f"Failed to delete blob: {e}", name=name, cause=e
            ) from e
        logger.debug("Deleted blob: name=%s", name)
