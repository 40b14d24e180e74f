"""Typed parsing of validated stock CSV files.

Besides typing each field, the parser enforces that every row belongs to the
tenant folder and to the reporting period of the file it came from. Any
violation discards the whole file.
"""

from __future__ import annotations

import re

from pharmastock.errors import FileErrorCode
from pharmastock.models.stock import RawStockRow
from pharmastock.services.ingestion.context import IngestionContext
from pharmastock.services.ingestion.result import StageResult
from pharmastock.services.ingestion.validator import (
    EXPECTED_HEADER,
    decode_lines,
    header_matches,
    parse_iso_date,
    parse_quantity,
    split_fields,
)

_NON_DIGITS = re.compile(r"\D")
CNPJ_LENGTH = 14


def _parse_line(line_no: int, line: str, ctx: IngestionContext) -> StageResult[RawStockRow]:
    file_name = ctx.file_name
    fields = split_fields(line)
    if len(fields) != len(EXPECTED_HEADER):
        return StageResult.failure(
            FileErrorCode.VALIDATION,
            f"Invalid CSV line (expected 4 columns) at line {line_no} file={file_name}",
        )
    raw_cnpj, medicine_name, raw_quantity, raw_date = fields

    cnpj = _NON_DIGITS.sub("", raw_cnpj)
    if len(cnpj) != CNPJ_LENGTH:
        return StageResult.failure(
            FileErrorCode.CONSISTENCY,
            f"Invalid CNPJ at line {line_no}: {raw_cnpj} file={file_name}",
        )
    if cnpj != ctx.tenant_id:
        return StageResult.failure(
            FileErrorCode.CONSISTENCY,
            f"CNPJ mismatch at line {line_no}: csv={cnpj} expected={ctx.tenant_id} "
            f"file={file_name}",
        )

    if not medicine_name:
        return StageResult.failure(
            FileErrorCode.VALIDATION,
            f"medicine_name is required at line {line_no} file={file_name}",
        )

    quantity = parse_quantity(raw_quantity)
    if quantity is None or quantity < 0:
        return StageResult.failure(
            FileErrorCode.VALIDATION,
            f"Invalid quantity at line {line_no}: {raw_quantity} file={file_name}",
        )

    reference_date = parse_iso_date(raw_date)
    if reference_date is None:
        return StageResult.failure(
            FileErrorCode.VALIDATION,
            f"Invalid reference_date at line {line_no}: {raw_date} file={file_name}",
        )
    if reference_date != ctx.reference_date:
        return StageResult.failure(
            FileErrorCode.CONSISTENCY,
            f"reference_date mismatch at line {line_no}: csv={reference_date} "
            f"expected={ctx.reference_date} file={file_name}",
        )

    return StageResult.success(
        RawStockRow(
            tenant_id=cnpj,
            product_name=medicine_name,
            quantity=quantity,
            reference_date=reference_date,
        )
    )


def parse_rows(data: bytes, ctx: IngestionContext) -> StageResult[tuple[RawStockRow, ...]]:
    """Parse a validated CSV file into rows bound to ctx.

    Returns:
        All rows in file order, or the first VALIDATION / CONSISTENCY failure.
        A file without data rows is a VALIDATION failure.
    """
    file_name = ctx.file_name
    lines = decode_lines(data)
    if lines is None:
        return StageResult.failure(
            FileErrorCode.VALIDATION, f"File is not valid UTF-8: {file_name}"
        )
    if not lines or not header_matches(split_fields(lines[0].strip())):
        return StageResult.failure(
            FileErrorCode.VALIDATION,
            f"Invalid CSV header. Expected: {';'.join(EXPECTED_HEADER)} file={file_name}",
        )

    rows: list[RawStockRow] = []
    for line_no, raw in enumerate(lines[1:], start=2):
        line = raw.strip()
        if not line:
            continue
        parsed = _parse_line(line_no, line, ctx)
        if not parsed.ok:
            return StageResult(error=parsed.error)
        rows.append(parsed.unwrap())

    if not rows:
        return StageResult.failure(
            FileErrorCode.VALIDATION, f"CSV contains no data rows: {file_name}"
        )
    return StageResult.success(tuple(rows))
