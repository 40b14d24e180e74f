"""Tenant registry: which pharmacies (CNPJs) may submit stock files."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pharmastock.errors import InfrastructureError
from pharmastock.persistence.db import begin_conn

if TYPE_CHECKING:
    from sqlalchemy import Engine


class PostgresPharmacyRepository:
    """Registry backed by the pharmacy table."""

    _EXISTS_SQL = text("SELECT 1 FROM pharmacy WHERE cnpj = :cnpj LIMIT 1")

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def exists(self, cnpj: str) -> bool:
        """Return True if the pharmacy is registered.

        Raises:
            InfrastructureError: If the query fails.
        """
        try:
            with begin_conn(self._engine) as conn:
                row = conn.execute(self._EXISTS_SQL, {"cnpj": cnpj}).fetchone()
        except SQLAlchemyError as e:
            raise InfrastructureError(f"Failed to query pharmacy by CNPJ: {cnpj}", cause=e) from e
        return row is not None


class InMemoryPharmacyRepository:
    """Set-backed registry used when no database is configured."""

    def __init__(self, cnpjs: Iterable[str] = ()) -> None:
        self._cnpjs = set(cnpjs)

    def add(self, cnpj: str) -> None:
        """Register a pharmacy."""
        self._cnpjs.add(cnpj)

    def exists(self, cnpj: str) -> bool:
        """Return True if the pharmacy is registered."""
        return cnpj in self._cnpjs


def get_pharmacy_repository(
    engine: Engine | None,
) -> PostgresPharmacyRepository | InMemoryPharmacyRepository:
    """Factory to get appropriate tenant registry."""
    if engine is not None:
        return PostgresPharmacyRepository(engine)
    return InMemoryPharmacyRepository()
