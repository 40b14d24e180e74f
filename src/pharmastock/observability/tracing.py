"""OpenTelemetry tracing configuration for pharmastock.

Tracing is opt-in. Without a configured provider every tracer call in the
codebase is a no-op, so modules may create spans unconditionally.

Environment Variables:
    PHARMASTOCK_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    PHARMASTOCK_REQUIRE_OTEL: Set to "1" to fail startup if tracing cannot initialize
    PHARMASTOCK_OTEL_SERVICE_NAME: Service name for spans (default: "pharmastock")
    PHARMASTOCK_OTEL_EXPORTER: Exporter type - "console" or "otlp" (default: "console")
    PHARMASTOCK_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP endpoint URL (optional)
    PHARMASTOCK_OTEL_EXPORTER_OTLP_PROTOCOL: "grpc" or "http" (default: "grpc")
    PHARMASTOCK_OTEL_TEST_CAPTURE: Set to "1" to use in-memory exporter for tests
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
    from opentelemetry.sdk.trace.export import SpanExporter

logger = logging.getLogger(__name__)

OTEL_ENABLED_ENV = "PHARMASTOCK_OTEL_ENABLED"
REQUIRE_OTEL_ENV = "PHARMASTOCK_REQUIRE_OTEL"
OTEL_SERVICE_NAME_ENV = "PHARMASTOCK_OTEL_SERVICE_NAME"
OTEL_EXPORTER_ENV = "PHARMASTOCK_OTEL_EXPORTER"
OTEL_OTLP_ENDPOINT_ENV = "PHARMASTOCK_OTEL_EXPORTER_OTLP_ENDPOINT"
OTEL_OTLP_PROTOCOL_ENV = "PHARMASTOCK_OTEL_EXPORTER_OTLP_PROTOCOL"
OTEL_TEST_CAPTURE_ENV = "PHARMASTOCK_OTEL_TEST_CAPTURE"

_tracer_provider: TracerProvider | None = None
_is_configured: bool = False
_test_exporter: Any = None


class TracingConfigError(Exception):
    """Raised when tracing configuration fails and PHARMASTOCK_REQUIRE_OTEL=1."""

    pass


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    return default


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip()


def is_tracing_enabled() -> bool:
    """Return True when PHARMASTOCK_OTEL_ENABLED is set."""
    return _get_env_bool(OTEL_ENABLED_ENV, False)


def _create_otlp_exporter(protocol: str, endpoint: str | None) -> SpanExporter:
    """Create OTLP exporter based on protocol."""
    kwargs: dict[str, Any] = {}
    if endpoint:
        kwargs["endpoint"] = endpoint

    if protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter as HTTPExporter,
        )

        return HTTPExporter(**kwargs)

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter as GRPCExporter,
    )

    return GRPCExporter(**kwargs)


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing.

    Idempotent - safe to call multiple times.

    Returns:
        True if tracing is enabled and configured, False otherwise.

    Raises:
        TracingConfigError: If PHARMASTOCK_REQUIRE_OTEL=1 and configuration fails.
    """
    global _tracer_provider, _is_configured, _test_exporter

    if not is_tracing_enabled():
        _is_configured = True
        logger.debug("OpenTelemetry tracing disabled (%s not set)", OTEL_ENABLED_ENV)
        return False

    test_capture = _get_env_bool(OTEL_TEST_CAPTURE_ENV, False)
    if _test_exporter is not None and test_capture:
        return True

    if _is_configured and _tracer_provider is not None:
        return True

    _is_configured = True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import (
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )

        service_name = _get_env_str(OTEL_SERVICE_NAME_ENV, "pharmastock")
        exporter_type = _get_env_str(OTEL_EXPORTER_ENV, "console")

        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

        if test_capture:
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            _test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        elif exporter_type == "otlp":
            exporter = _create_otlp_exporter(
                _get_env_str(OTEL_OTLP_PROTOCOL_ENV, "grpc"),
                _get_env_str(OTEL_OTLP_ENDPOINT_ENV) or None,
            )
            provider.add_span_processor(BatchSpanProcessor(exporter))
        else:
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider

        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            "in-memory" if test_capture else exporter_type,
        )
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if _get_env_bool(REQUIRE_OTEL_ENV, False):
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False


def instrument_fastapi(app: Any) -> None:
    """Instrument FastAPI application with OpenTelemetry."""
    if not is_tracing_enabled():
        return

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app, excluded_urls="health")
        logger.debug("FastAPI instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument FastAPI: %s", e)


def instrument_sqlalchemy(engine: Any) -> None:
    """Instrument SQLAlchemy engine with OpenTelemetry."""
    if not is_tracing_enabled():
        return

    try:
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

        SQLAlchemyInstrumentor().instrument(engine=engine, enable_commenter=False)
        logger.debug("SQLAlchemy engine instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument SQLAlchemy: %s", e)


def get_test_spans() -> list[ReadableSpan]:
    """Get captured spans from in-memory exporter (for testing)."""
    if _test_exporter is not None:
        return list(_test_exporter.get_finished_spans())
    return []


def reset_tracing() -> None:
    """Reset tracing configuration (for testing).

    The global TracerProvider cannot be replaced once set, so the in-memory
    exporter is kept and only cleared.
    """
    global _is_configured

    if _test_exporter is not None:
        _test_exporter.clear()
    _is_configured = False
