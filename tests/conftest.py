"""Pytest configuration and fixtures for pharmastock tests.

Provides a temporary filesystem blob store, in-memory repositories, a SQLite
engine migrated to the current schema, and a frozen clock shared by the
orchestrator and the control ledger.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from pharmastock.persistence.repositories import (
    InMemoryIngestionControlRepository,
    InMemoryMedicationRepository,
    InMemoryPharmacyRepository,
    InMemoryStockRepository,
)
from pharmastock.services.ingestion.orchestrator import StockIngestionOrchestrator
from pharmastock.storage.filesystem_store import FilesystemBlobStore
from pharmastock.storage.layout import InboxLayout

NOW = datetime(2025, 1, 10, 12, 0, tzinfo=UTC)
TENANT = "12345678000195"
OTHER_TENANT = "98765432000110"
REFERENCE_DATE = date(2025, 1, 10)
FILE_NAME = "farmacia_estoque_2025-01-10_v1.csv"
HEADER = "cnpj;medicine_name;quantity;reference_date"

MEDICATION_CODES = {
    "Dipirona 500mg": "MED001",
    "Paracetamol 750mg": "MED002",
    "Amoxicilina 500mg": "MED003",
}


def make_csv(*rows: tuple[str, str, Any, str], header: str = HEADER) -> bytes:
    """Build CSV bytes from (cnpj, medicine_name, quantity, reference_date) rows."""
    lines = [header] + [";".join(str(field) for field in row) for row in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def valid_csv(tenant: str = TENANT, reference_date: str = "2025-01-10") -> bytes:
    """Return a well-formed file with one row per known medication."""
    return make_csv(
        (tenant, "Dipirona 500mg", 5, reference_date),
        (tenant, "Paracetamol 750mg", 20, reference_date),
        (tenant, "Amoxicilina 500mg", 45, reference_date),
    )


class RecordingBlobStore(FilesystemBlobStore):
    """Filesystem store that records every download."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.downloads: list[str] = []

    def download(self, name: str) -> bytes:
        self.downloads.append(name)
        return super().download(name)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Return a clock frozen at NOW."""
    return lambda: NOW


@pytest.fixture
def blob_store(tmp_path: Path) -> RecordingBlobStore:
    """Create a filesystem blob store rooted in a temp directory."""
    return RecordingBlobStore(base_dir=tmp_path / "blobs")


@pytest.fixture
def layout(blob_store: RecordingBlobStore) -> InboxLayout:
    """Create the default inbox/processed/error layout."""
    return InboxLayout(blob_store)


@pytest.fixture
def seed_inbox(blob_store: RecordingBlobStore) -> Callable[..., str]:
    """Return a helper that places a file in the inbox with a given age."""

    def _seed(
        data: bytes,
        *,
        tenant: str = TENANT,
        file_name: str = FILE_NAME,
        age: timedelta = timedelta(hours=1),
    ) -> str:
        name = f"inbox/{tenant}/{file_name}"
        blob_store.upload(name, data, last_modified=NOW - age)
        return name

    return _seed


@pytest.fixture
def control(clock: Callable[[], datetime]) -> InMemoryIngestionControlRepository:
    """Create an in-memory control ledger on the frozen clock."""
    return InMemoryIngestionControlRepository(clock=clock)


@pytest.fixture
def pharmacies() -> InMemoryPharmacyRepository:
    """Create a registry containing TENANT and OTHER_TENANT."""
    return InMemoryPharmacyRepository([TENANT, OTHER_TENANT])


@pytest.fixture
def medications() -> InMemoryMedicationRepository:
    """Create a lookup with the known medications."""
    return InMemoryMedicationRepository(MEDICATION_CODES)


@pytest.fixture
def stock_sink() -> InMemoryStockRepository:
    """Create an in-memory stock sink."""
    return InMemoryStockRepository()


@pytest.fixture
def orchestrator(
    layout: InboxLayout,
    control: InMemoryIngestionControlRepository,
    pharmacies: InMemoryPharmacyRepository,
    medications: InMemoryMedicationRepository,
    stock_sink: InMemoryStockRepository,
    clock: Callable[[], datetime],
) -> StockIngestionOrchestrator:
    """Create an orchestrator wired to in-memory collaborators."""
    return StockIngestionOrchestrator(
        layout,
        control,
        pharmacies,
        medications,
        stock_sink,
        min_file_age_minutes=15,
        clock=clock,
    )


@pytest.fixture
def sqlite_engine(tmp_path: Path) -> Iterator[Any]:
    """Create a SQLite engine migrated to head."""
    from pharmastock.persistence.db import create_db_engine
    from pharmastock.persistence.migrations import run_upgrade

    engine = create_db_engine(f"sqlite:///{tmp_path / 'pharmastock.db'}")
    run_upgrade(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clean_pharmastock_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every PHARMASTOCK_* variable from the environment."""
    import os

    for key in list(os.environ):
        if key.startswith("PHARMASTOCK_"):
            monkeypatch.delenv(key, raising=False)
