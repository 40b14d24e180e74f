"""Observability module for pharmastock.

Provides OpenTelemetry tracing configuration.
"""

from pharmastock.observability.tracing import configure_tracing, is_tracing_enabled

__all__ = ["configure_tracing", "is_tracing_enabled"]
