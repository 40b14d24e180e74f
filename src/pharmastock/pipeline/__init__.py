"""Background execution of scheduled ingestion runs."""

from pharmastock.pipeline.worker import IngestionWorker

__all__ = ["IngestionWorker"]
