"""Tests for deriving the ingestion context from an inbox blob name."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from pharmastock.errors import FileErrorCode
from pharmastock.services.ingestion.context import derive_context
from pharmastock.storage.models import BlobRef

TENANT = "12345678000195"


def _blob(name: str) -> BlobRef:
    return BlobRef(name=name, version_tag="0xABC", last_modified=datetime(2025, 1, 10, tzinfo=UTC))


class TestDeriveContext:
    """Tests for derive_context()."""

    def test_valid_path(self) -> None:
        """Tenant, file name and reference date come from the path."""
        name = f"inbox/{TENANT}/farmacia_estoque_2025-01-10_v1.csv"
        result = derive_context(_blob(name), "inbox/")

        assert result.ok
        ctx = result.unwrap()
        assert ctx.path == f"inbox/{TENANT}/farmacia_estoque_2025-01-10_v1.csv"
        assert ctx.version_tag == "0xABC"
        assert ctx.file_name == "farmacia_estoque_2025-01-10_v1.csv"
        assert ctx.tenant_id == TENANT
        assert ctx.reference_date == date(2025, 1, 10)

    def test_extension_is_case_insensitive(self) -> None:
        """An upper-case .CSV extension is accepted."""
        result = derive_context(_blob(f"inbox/{TENANT}/a_b_2025-01-10_c.CSV"), "inbox/")
        assert result.ok

    @pytest.mark.parametrize(
        "name",
        [
            "other/12345678000195/a_b_2025-01-10_c.csv",
            "inbox/a_b_2025-01-10_c.csv",
            "inbox/12345678000195/nested/a_b_2025-01-10_c.csv",
            "inbox/1234/a_b_2025-01-10_c.csv",
            "inbox/12345678000195/stock_2025-01-10.csv",
            "inbox/12345678000195/a_b_20250110_c.csv",
            "inbox/12345678000195/a_b_2025-01-10_c.txt",
            "inbox/12345678000195/a_b_2025-02-30_c.csv",
        ],
    )
    def test_rejected_paths(self, name: str) -> None:
        """Paths outside the convention fail with PATH_PATTERN."""
        result = derive_context(_blob(name), "inbox/")

        assert not result.ok
        assert result.error is not None
        assert result.error.code is FileErrorCode.PATH_PATTERN
