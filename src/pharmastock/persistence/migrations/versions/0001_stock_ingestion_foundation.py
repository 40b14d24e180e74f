"""Stock ingestion foundation: reference tables, stock and control ledger.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates:
- pharmacy: tenant registry keyed by CNPJ
- medication_name: medicine name -> canonical code reference table
- pharmacy_medicine_stock: current stock per (pharmacy, medicine)
- file_ingestion_control: idempotency ledger, unique on (blob_path, etag)
"""

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _id_column() -> str:
    if op.get_bind().dialect.name == "sqlite":
        return "id INTEGER PRIMARY KEY AUTOINCREMENT"
    return "id BIGSERIAL PRIMARY KEY"


def upgrade() -> None:
    """Apply migration: create tables and constraints."""

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS pharmacy (
            cnpj CHAR(14) PRIMARY KEY,
            name TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS medication_name (
            medicine_name TEXT PRIMARY KEY,
            medicine_code TEXT NOT NULL
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS pharmacy_medicine_stock (
            pharmacy_id CHAR(14) NOT NULL REFERENCES pharmacy (cnpj),
            medicine_code TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK (quantity >= 0),
            stock_status TEXT NOT NULL
                CHECK (stock_status IN ('CRITICAL', 'NORMAL', 'HIGH')),
            updated_at TIMESTAMPTZ NOT NULL,
            PRIMARY KEY (pharmacy_id, medicine_code)
        )
        """
    )

    op.execute(
        f"""
        CREATE TABLE IF NOT EXISTS file_ingestion_control (
            {_id_column()},
            blob_path TEXT NOT NULL,
            etag TEXT NOT NULL,
            file_name TEXT NOT NULL,
            cnpj CHAR(14) NOT NULL,
            reference_date DATE NOT NULL,
            status TEXT NOT NULL
                CHECK (status IN ('PROCESSING', 'PROCESSED', 'FAILED')),
            error_reason VARCHAR(1000),
            received_at TIMESTAMPTZ NOT NULL,
            processed_at TIMESTAMPTZ,
            CONSTRAINT uq_file_ingestion_control_blob_etag UNIQUE (blob_path, etag)
        )
        """
    )

    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_file_ingestion_control_status_received
        ON file_ingestion_control (status, received_at)
        """
    )


def downgrade() -> None:
    """Revert migration: drop all tables."""
    op.execute("DROP TABLE IF EXISTS file_ingestion_control")
    op.execute("DROP TABLE IF EXISTS pharmacy_medicine_stock")
    op.execute("DROP TABLE IF EXISTS medication_name")
    op.execute("DROP TABLE IF EXISTS pharmacy")
