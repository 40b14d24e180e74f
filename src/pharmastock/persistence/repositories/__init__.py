"""Repositories for the relational store, each with an in-memory fallback."""

from pharmastock.persistence.repositories.ingestion_control import (
    InMemoryIngestionControlRepository,
    PostgresIngestionControlRepository,
    get_ingestion_control_repository,
)
from pharmastock.persistence.repositories.medications import (
    InMemoryMedicationRepository,
    PostgresMedicationRepository,
    get_medication_repository,
)
from pharmastock.persistence.repositories.pharmacies import (
    InMemoryPharmacyRepository,
    PostgresPharmacyRepository,
    get_pharmacy_repository,
)
from pharmastock.persistence.repositories.stock import (
    InMemoryStockRepository,
    PostgresStockRepository,
    StockEntryValidationError,
    get_stock_repository,
)

__all__ = [
    "InMemoryIngestionControlRepository",
    "InMemoryMedicationRepository",
    "InMemoryPharmacyRepository",
    "InMemoryStockRepository",
    "PostgresIngestionControlRepository",
    "PostgresMedicationRepository",
    "PostgresPharmacyRepository",
    "PostgresStockRepository",
    "StockEntryValidationError",
    "get_ingestion_control_repository",
    "get_medication_repository",
    "get_pharmacy_repository",
    "get_stock_repository",
]
