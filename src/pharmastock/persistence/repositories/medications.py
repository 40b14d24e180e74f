"""Medication reference lookup: product name -> canonical medicine code."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pharmastock.errors import InfrastructureError
from pharmastock.persistence.db import begin_conn

if TYPE_CHECKING:
    from sqlalchemy import Engine


class PostgresMedicationRepository:
    """Lookup backed by the medication_name reference table."""

    _SELECT_SQL = text(
        """
        SELECT medicine_code FROM medication_name
        WHERE medicine_name = :medicine_name
        LIMIT 1
        """
    )

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def find_code_by_name(self, medicine_name: str) -> str | None:
        """Return the code for an exact name match, or None.

        Raises:
            InfrastructureError: If the query fails.
        """
        try:
            with begin_conn(self._engine) as conn:
                row = conn.execute(self._SELECT_SQL, {"medicine_name": medicine_name}).fetchone()
        except SQLAlchemyError as e:
            raise InfrastructureError(
                f"Failed to query medication by name: {medicine_name}", cause=e
            ) from e
        return None if row is None else str(row.medicine_code)


class InMemoryMedicationRepository:
    """Dictionary-backed lookup used when no database is configured."""

    def __init__(self, codes: Mapping[str, str] | None = None) -> None:
        self._codes: dict[str, str] = dict(codes or {})

    def add(self, medicine_name: str, medicine_code: str) -> None:
        """Register a name -> code mapping."""
        self._codes[medicine_name] = medicine_code

    def find_code_by_name(self, medicine_name: str) -> str | None:
        """Return the code for an exact name match, or None."""
        return self._codes.get(medicine_name)


def get_medication_repository(
    engine: Engine | None,
) -> PostgresMedicationRepository | InMemoryMedicationRepository:
    """Factory to get appropriate medication lookup."""
    if engine is not None:
        return PostgresMedicationRepository(engine)
    return InMemoryMedicationRepository()
