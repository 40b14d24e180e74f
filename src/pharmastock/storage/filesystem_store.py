"""Filesystem blob storage backend.

Provides local filesystem storage for development and testing with:
- Blob names mapped to files under {base_dir}/{container}/
- Path traversal protection
- Version tags derived from content SHA256 and modification time
- Atomic writes via temp file + replace

Environment Variables:
    PHARMASTOCK_BLOB_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / pharmastock_blobs)
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pharmastock.storage.errors import (
    BlobNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from pharmastock.storage.models import BlobRef
from pharmastock.storage.object_store import BlobStore
from pharmastock.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

BLOB_BASE_DIR_ENV = "PHARMASTOCK_BLOB_BASE_DIR"
DEFAULT_CONTAINER = "stock-files"

_TMP_PREFIX = "."


def _is_path_traversal(name: str) -> bool:
    """Check if a blob name contains path traversal sequences.

    Detects empty names, control characters, backslashes, absolute paths,
    drive letters and "." or ".." segments. Any other character, including
    spaces and non-ASCII letters, is a valid part of a name.
    """
    if not name or "\\" in name or any(ord(ch) < 32 for ch in name):
        return True
    if name.startswith("/") or name.startswith("~"):
        return True
    if len(name) >= 2 and name[1] == ":":
        return True
    return any(segment in ("", ".", "..") for segment in name.split("/"))


def _validate_name(name: str) -> None:
    """Validate blob name and raise if invalid."""
    if _is_path_traversal(name):
        raise PathTraversalError(
            message="Invalid blob name: path traversal detected",
            name=name,
        )


@dataclass(frozen=True)
class CompletedCopy:
    """Copy handle for backends whose copies finish synchronously."""

    source: str
    target: str

    def wait_for_completion(self, timeout: float | None = None) -> None:
        """Return immediately; the copy already finished."""
        return None


class FilesystemBlobStore(BlobStore):
    """Filesystem-based blob storage implementation.

    Blobs are plain files:
        {base_dir}/{container}/{name}

    Temporary files written during atomic replacement start with "." and are
    never listed.
    """

    def __init__(
        self,
        base_dir: str | Path | None = None,
        container: str = DEFAULT_CONTAINER,
    ) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                PHARMASTOCK_BLOB_BASE_DIR env var or OS temp directory.
            container: Container name, a sub-directory of base_dir.
        """
        if base_dir is None:
            base_dir = os.environ.get(BLOB_BASE_DIR_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "pharmastock_blobs"
        else:
            base_dir = Path(base_dir)

        _validate_name(container)
        self._root = (base_dir / container).resolve()
        logger.debug("FilesystemBlobStore initialized with root=%s", self._root)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "filesystem"

    @property
    def root(self) -> Path:
        """Return the container directory path."""
        return self._root

    def _path_for(self, name: str) -> Path:
        """Resolve a blob name to a file path inside the container."""
        _validate_name(name)
        path = (self._root / name).resolve()
        try:
            path.relative_to(self._root)
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage container",
                name=name,
            ) from e
        return path

    def _ref_for(self, name: str, path: Path) -> BlobRef:
        """Build a BlobRef from the file on disk."""
        stat = path.stat()
        with path.open("rb") as f:
            digest = hashlib.file_digest(f, "sha256").hexdigest()[:16]
        return BlobRef(
            name=name,
            version_tag=f"0x{digest}{stat.st_mtime_ns:x}".upper(),
            last_modified=datetime.fromtimestamp(stat.st_mtime, UTC),
        )

    def _write_atomic(self, path: Path, data: bytes, name: str) -> None:
        """Write content to path via temp file + replace."""
        tmp_file = path.parent / f"{_TMP_PREFIX}{path.name}.{uuid.uuid4().hex}.tmp"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_bytes(data)
            tmp_file.replace(path)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageBackendError(
                message=f"Failed to write blob: {e}",
                name=name,
                cause=e,
            ) from e

    def _listing_root(self, prefix: str) -> Path | None:
        """Return the deepest directory that can hold names starting with prefix."""
        directory = prefix.rpartition("/")[0]
        if not directory:
            return self._root
        if _is_path_traversal(directory):
            return None
        return self._root / directory

    @traced_storage_operation("list")
    def list_blobs(self, prefix: str) -> list[BlobRef]:
        """List blobs whose name starts with prefix, sorted by name.

        Only the directory named by the prefix is walked. Files whose relative
        path is not a valid blob name are skipped with a warning, so every
        listed name can be downloaded, copied and deleted.
        """
        start = self._listing_root(prefix)
        if start is None or not start.is_dir():
            return []

        refs: list[BlobRef] = []
        try:
            for path in start.rglob("*"):
                if not path.is_file() or path.name.startswith(_TMP_PREFIX):
                    continue
                name = path.relative_to(self._root).as_posix()
                if not name.startswith(prefix):
                    continue
                if _is_path_traversal(name):
                    logger.warning("Skipping file with an invalid blob name: %r", name)
                    continue
                refs.append(self._ref_for(name, path))
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to list blobs: {e}",
                name=prefix,
                cause=e,
            ) from e

        refs.sort(key=lambda ref: ref.name)
        return refs

    @traced_storage_operation("download")
    def download(self, name: str) -> bytes:
        """Return the full content of a blob."""
        path = self._path_for(name)
        if not path.is_file():
            raise BlobNotFoundError(name=name)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to download blob: {e}",
                name=name,
                cause=e,
            ) from e

    @traced_storage_operation("upload")
    def upload(
        self,
        name: str,
        data: bytes,
        *,
        last_modified: datetime | None = None,
    ) -> BlobRef:
        """Create or overwrite a blob.

        Args:
            name: Blob name.
            data: Content bytes.
            last_modified: Optional timestamp to stamp on the file (dev/test
                seeding of aged inbox files).
        """
        path = self._path_for(name)
        self._write_atomic(path, data, name)
        if last_modified is not None:
            ts = last_modified.timestamp()
            os.utime(path, (ts, ts))

        ref = self._ref_for(name, path)
        logger.debug("Uploaded blob: name=%s version=%s", name, ref.version_tag)
        return ref

    def exists(self, name: str) -> bool:
        """Return True if the blob exists."""
        return self._path_for(name).is_file()

    @traced_storage_operation("begin_copy")
    def begin_copy(self, source: str, target: str) -> CompletedCopy:
        """Copy source to target synchronously."""
        source_path = self._path_for(source)
        target_path = self._path_for(target)
        if not source_path.is_file():
            raise BlobNotFoundError(name=source)

        tmp_file = target_path.parent / f"{_TMP_PREFIX}{target_path.name}.{uuid.uuid4().hex}.tmp"
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source_path, tmp_file)
            tmp_file.replace(target_path)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageBackendError(
                message=f"Failed to copy blob to {target}: {e}",
                name=source,
                cause=e,
            ) from e

        logger.debug("Copied blob: %s -> %s", source, target)
        return CompletedCopy(source=source, target=target)

    @traced_storage_operation("delete")
    def delete(self, name: str) -> None:
        """Delete a blob."""
        path = self._path_for(name)
        if not path.is_file():
            raise BlobNotFoundError(name=name)
        try:
            path.unlink()
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete blob: {e}",
                name=name,
                cause=e,
            ) from e
        logger.debug("Deleted blob: name=%s", name)
