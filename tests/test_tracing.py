"""Tests for opt-in OpenTelemetry tracing of ingestion runs."""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import pytest
from conftest import valid_csv

from pharmastock.observability.tracing import (
    configure_tracing,
    get_test_spans,
    is_tracing_enabled,
    reset_tracing,
)
from pharmastock.services.ingestion.orchestrator import StockIngestionOrchestrator

ENV_VARS = ["PHARMASTOCK_OTEL_ENABLED", "PHARMASTOCK_OTEL_TEST_CAPTURE"]


@pytest.fixture(autouse=True)
def reset_tracing_env() -> Any:
    """Reset tracing environment before each test."""
    original_env = {k: os.environ.get(k) for k in ENV_VARS}
    reset_tracing()

    yield

    for k in ENV_VARS:
        os.environ.pop(k, None)
    for k, v in original_env.items():
        if v is not None:
            os.environ[k] = v
    reset_tracing()


class TestDisabledByDefault:
    """Tracing stays off unless requested."""

    def test_not_enabled(self) -> None:
        """Without PHARMASTOCK_OTEL_ENABLED nothing is configured."""
        os.environ.pop("PHARMASTOCK_OTEL_ENABLED", None)

        assert is_tracing_enabled() is False
        assert configure_tracing() is False

    @pytest.mark.parametrize("value", ["1", "true", "YES"])
    def test_truthy_values(self, value: str) -> None:
        """Common truthy spellings enable tracing."""
        os.environ["PHARMASTOCK_OTEL_ENABLED"] = value

        assert is_tracing_enabled() is True


class TestIngestionSpans:
    """Spans emitted by the orchestrator."""

    def _enable_capture(self) -> None:
        os.environ["PHARMASTOCK_OTEL_ENABLED"] = "1"
        os.environ["PHARMASTOCK_OTEL_TEST_CAPTURE"] = "1"
        assert configure_tracing() is True

    def test_processed_file_span(
        self, orchestrator: StockIngestionOrchestrator, seed_inbox: Callable[..., str]
    ) -> None:
        """Each eligible file gets one span carrying its outcome."""
        self._enable_capture()
        seed_inbox(valid_csv())

        orchestrator.run()

        spans = [s for s in get_test_spans() if s.name == "pharmastock.ingest_file"]
        assert len(spans) == 1
        assert dict(spans[0].attributes or {})["pharmastock.outcome"] == "processed"

    def test_failed_file_span(
        self, orchestrator: StockIngestionOrchestrator, seed_inbox: Callable[..., str]
    ) -> None:
        """A rejected file is recorded as failed."""
        self._enable_capture()
        seed_inbox(b"not;a;stock;file\n")

        orchestrator.run()

        spans = [s for s in get_test_spans() if s.name == "pharmastock.ingest_file"]
        assert [dict(s.attributes or {})["pharmastock.outcome"] for s in spans] == ["failed"]
