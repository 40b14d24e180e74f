"""Object storage data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class BlobRef:
    """Listing entry for one blob.

    Identity is the name; version_tag changes whenever the content changes.

    Attributes:
        name: Full blob name including prefix (e.g. "inbox/<cnpj>/<file>.csv").
        version_tag: Opaque version identifier (ETag-like).
        last_modified: UTC timestamp of the last write.
    """

    name: str
    version_tag: str
    last_modified: datetime
