"""Pharmastock - pharmacy stock file ingestion."""

__version__ = "0.1.0"
