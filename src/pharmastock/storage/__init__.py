"""Blob storage abstraction for the stock file inbox.

Backends:
- FilesystemBlobStore: Local filesystem (dev/test)
- AzureBlobStore: Azure Blob Storage (production)

Environment Variables:
    PHARMASTOCK_BLOB_CONNECTION_STRING: Azure connection string; selects the
        Azure backend when set
    PHARMASTOCK_BLOB_BASE_DIR: Base directory for filesystem backend
        (default: OS temp dir / pharmastock_blobs)
"""

from pharmastock.storage.errors import (
    BlobNotFoundError,
    DestinationConflictError,
    ObjectStorageError,
    PathTraversalError,
    StorageBackendError,
)
from pharmastock.storage.layout import InboxLayout, normalize_prefix
from pharmastock.storage.models import BlobRef
from pharmastock.storage.object_store import BlobStore, CopyPoller

__all__ = [
    "BlobNotFoundError",
    "BlobRef",
    "BlobStore",
    "CopyPoller",
    "DestinationConflictError",
    "InboxLayout",
    "ObjectStorageError",
    "PathTraversalError",
    "StorageBackendError",
    "normalize_prefix",
]
