"""Derivation of the per-file ingestion context from a blob listing entry.

Inbox blobs are named ``<inbox prefix><tenant_id>/<file_name>`` where
tenant_id is a 14-digit CNPJ and file_name follows
``<segment>_<segment>_<yyyy-MM-dd>_<segment>.csv``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from pharmastock.errors import FileErrorCode
from pharmastock.services.ingestion.result import StageResult
from pharmastock.storage.models import BlobRef

TENANT_ID_PATTERN = re.compile(r"^\d{14}$")
FILE_NAME_PATTERN = re.compile(
    r"^[^_/]+_[^_/]+_(?P<date>\d{4}-\d{2}-\d{2})_[^_/]+\.(?i:csv)$"
)


@dataclass(frozen=True)
class IngestionContext:
    """Identity and business keys of one inbox file.

    Attributes:
        path: Full blob name.
        version_tag: Blob version identifier at listing time.
        file_name: Last path segment.
        tenant_id: Pharmacy CNPJ taken from the path.
        reference_date: Date embedded in the file name.
    """

    path: str
    version_tag: str
    file_name: str
    tenant_id: str
    reference_date: date


def derive_context(blob: BlobRef, inbox_prefix: str) -> StageResult[IngestionContext]:
    """Build the IngestionContext for an inbox blob.

    Returns a PATH_PATTERN failure when the name does not follow the
    ``<tenant_id>/<file_name>`` convention under the inbox prefix.
    """
    name = blob.name
    if not name.startswith(inbox_prefix):
        return StageResult.failure(
            FileErrorCode.PATH_PATTERN, f"Blob is not under inbox prefix {inbox_prefix!r}: {name}"
        )

    segments = name[len(inbox_prefix) :].split("/")
    if len(segments) != 2:
        return StageResult.failure(
            FileErrorCode.PATH_PATTERN,
            f"Blob path must be <tenant_id>/<file_name> under the inbox: {name}",
        )

    tenant_id, file_name = segments
    if not TENANT_ID_PATTERN.match(tenant_id):
        return StageResult.failure(
            FileErrorCode.PATH_PATTERN, f"Tenant folder is not a 14-digit CNPJ: {name}"
        )

    match = FILE_NAME_PATTERN.match(file_name)
    if match is None:
        return StageResult.failure(
            FileErrorCode.PATH_PATTERN,
            f"File name does not match <x>_<x>_<yyyy-MM-dd>_<x>.csv: {file_name}",
        )

    try:
        reference_date = date.fromisoformat(match.group("date"))
    except ValueError:
        return StageResult.failure(
            FileErrorCode.PATH_PATTERN, f"File name carries an invalid date: {file_name}"
        )

    return StageResult.success(
        IngestionContext(
            path=name,
            version_tag=blob.version_tag,
            file_name=file_name,
            tenant_id=tenant_id,
            reference_date=reference_date,
        )
    )
