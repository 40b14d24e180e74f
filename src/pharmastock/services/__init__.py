"""Pharmastock services."""
