"""Tests for typed row parsing with tenant and period consistency."""

from __future__ import annotations

from conftest import FILE_NAME, HEADER, OTHER_TENANT, REFERENCE_DATE, TENANT, make_csv, valid_csv

from pharmastock.errors import FileErrorCode
from pharmastock.services.ingestion.context import IngestionContext
from pharmastock.services.ingestion.parser import parse_rows

CTX = IngestionContext(
    path=f"inbox/{TENANT}/{FILE_NAME}",
    version_tag="0xABC",
    file_name=FILE_NAME,
    tenant_id=TENANT,
    reference_date=REFERENCE_DATE,
)


class TestParseRows:
    """Successful parsing."""

    def test_parses_all_rows_in_order(self) -> None:
        """Every data row becomes a RawStockRow."""
        result = parse_rows(valid_csv(), CTX)

        assert result.ok
        rows = result.unwrap()
        assert [(r.product_name, r.quantity) for r in rows] == [
            ("Dipirona 500mg", 5),
            ("Paracetamol 750mg", 20),
            ("Amoxicilina 500mg", 45),
        ]
        assert {r.tenant_id for r in rows} == {TENANT}
        assert {r.reference_date for r in rows} == {REFERENCE_DATE}

    def test_formatted_cnpj_is_reduced_to_digits(self) -> None:
        """Punctuated CNPJs are compared by their digits."""
        data = make_csv(("12.345.678/0001-95", "Dipirona 500mg", 5, "2025-01-10"))

        rows = parse_rows(data, CTX).unwrap()

        assert rows[0].tenant_id == TENANT


class TestConsistencyRules:
    """Tenant and period isolation."""

    def test_foreign_tenant_row_fails_whole_file(self) -> None:
        """One row of another tenant discards the file."""
        data = make_csv(
            (TENANT, "Dipirona 500mg", 5, "2025-01-10"),
            (OTHER_TENANT, "Paracetamol 750mg", 20, "2025-01-10"),
        )

        result = parse_rows(data, CTX)

        assert not result.ok
        assert result.error is not None
        assert result.error.code is FileErrorCode.CONSISTENCY
        assert "CNPJ mismatch at line 3" in result.error.message

    def test_other_period_row_fails_whole_file(self) -> None:
        """One row of another reference date discards the file."""
        data = make_csv(
            (TENANT, "Dipirona 500mg", 5, "2025-01-10"),
            (TENANT, "Paracetamol 750mg", 20, "2025-01-09"),
        )

        result = parse_rows(data, CTX)

        assert result.error is not None
        assert result.error.code is FileErrorCode.CONSISTENCY
        assert "reference_date mismatch at line 3" in result.error.message

    def test_short_cnpj(self) -> None:
        """CNPJs without 14 digits are rejected."""
        data = make_csv(("1234", "Dipirona 500mg", 5, "2025-01-10"))

        result = parse_rows(data, CTX)

        assert result.error is not None
        assert result.error.code is FileErrorCode.CONSISTENCY
        assert "Invalid CNPJ at line 2" in result.error.message


class TestStructure:
    """Structural checks repeated by the parser."""

    def test_header_only_is_an_error(self) -> None:
        """A file without data rows fails."""
        result = parse_rows(f"{HEADER}\n\n".encode(), CTX)

        assert result.error is not None
        assert result.error.code is FileErrorCode.VALIDATION
        assert "no data rows" in result.error.message

    def test_wrong_header(self) -> None:
        """An unexpected header fails."""
        data = make_csv((TENANT, "Dipirona 500mg", 5, "2025-01-10"), header="a;b;c;d")

        result = parse_rows(data, CTX)

        assert result.error is not None
        assert "Invalid CSV header" in result.error.message
