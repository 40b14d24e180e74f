"""Structural validation of stock CSV files.

Checks run over the raw bytes and stop at the first violation. Messages carry
the 1-based line number and the file name so the uploader can locate the
defect. Parsing is a separate pass (see ``parser``).
"""

from __future__ import annotations

import re
from datetime import date

from pharmastock.errors import FileErrorCode
from pharmastock.services.ingestion.result import StageResult

DELIMITER = ";"
EXPECTED_HEADER = ("cnpj", "medicine_name", "quantity", "reference_date")
MAX_QUANTITY = 2_147_483_647

_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
_ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def split_fields(line: str) -> list[str]:
    """Split a CSV line on the delimiter and trim every field."""
    return [field.strip() for field in line.split(DELIMITER)]


def decode_lines(data: bytes) -> list[str] | None:
    """Decode UTF-8 content into lines, or None when it is not valid UTF-8."""
    try:
        content = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return None
    return content.splitlines()


def header_matches(fields: list[str]) -> bool:
    """Return True if fields equal the expected header, ignoring case."""
    return [f.lower() for f in fields] == list(EXPECTED_HEADER)


def parse_quantity(value: str) -> int | None:
    """Parse a quantity field; None if it is not a 32-bit integer."""
    if not _INTEGER_PATTERN.match(value):
        return None
    quantity = int(value)
    if abs(quantity) > MAX_QUANTITY:
        return None
    return quantity


def parse_iso_date(value: str) -> date | None:
    """Parse a yyyy-MM-dd date; None if malformed or not a calendar date."""
    if not _ISO_DATE_PATTERN.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def validate_csv(data: bytes, file_name: str) -> StageResult[None]:
    """Validate the structure of a stock CSV file.

    Args:
        data: Raw file content.
        file_name: Name used for the extension check and in messages.

    Returns:
        Success with no value, or a VALIDATION failure describing the first
        defect found.
    """

    def fail(message: str) -> StageResult[None]:
        return StageResult.failure(FileErrorCode.VALIDATION, message)

    if not file_name.lower().endswith(".csv"):
        return fail(f"Invalid file extension (expected .csv): {file_name}")

    lines = decode_lines(data)
    if lines is None:
        return fail(f"File is not valid UTF-8: {file_name}")
    if not any(line.strip() for line in lines):
        return fail(f"File is empty: {file_name}")

    header = lines[0].strip()
    if not header:
        return fail(f"Header is empty: {file_name}")

    header_fields = split_fields(header)
    if len(header_fields) != len(EXPECTED_HEADER):
        return fail(f"Header with an invalid number of columns: {file_name}")
    for column, (expected, received) in enumerate(zip(EXPECTED_HEADER, header_fields), start=1):
        if expected != received.lower():
            return fail(
                f"Invalid header in column {column}: expected value = {expected} "
                f"received value = {received} ({file_name})"
            )

    for line_no, raw in enumerate(lines[1:], start=2):
        line = raw.strip()
        if not line:
            continue

        fields = split_fields(line)
        if len(fields) != len(EXPECTED_HEADER):
            return fail(f"Line {line_no} with invalid columns ({len(fields)}): {file_name}")

        cnpj, medicine_name, quantity, reference_date = fields
        if not cnpj:
            return fail(f"Line {line_no} CNPJ is empty: {file_name}")
        if not medicine_name:
            return fail(f"Line {line_no} medicine_name is empty: {file_name}")

        parsed_quantity = parse_quantity(quantity)
        if parsed_quantity is None:
            return fail(f"Line {line_no} quantity invalid: {quantity} ({file_name})")
        if parsed_quantity < 0:
            return fail(f"Line {line_no} quantity < 0: {quantity} ({file_name})")

        if parse_iso_date(reference_date) is None:
            return fail(
                f"Line {line_no} reference_date invalid (yyyy-MM-dd): {reference_date} "
                f"({file_name})"
            )

    return StageResult.success(None)
