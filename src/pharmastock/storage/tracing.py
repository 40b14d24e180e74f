"""Blob storage OpenTelemetry tracing integration.

Provides tracing decorators for storage operations.

Security:
    - Never export filesystem paths or raw blob names in span attributes
    - Blob names are hashed; tenant CNPJs are part of the names
"""

from __future__ import annotations

import functools
import hashlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

from pharmastock.observability.tracing import is_tracing_enabled
from pharmastock.storage.models import BlobRef

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace storage operations with OpenTelemetry.

    Emits spans with safe attributes (hashed blob names, backend, result size).

    Args:
        operation: Operation name (e.g., "list", "download", "begin_copy").

    Returns:
        Decorated function that emits OTel spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, name: str, *args: Any, **kwargs: Any) -> Any:
            if not is_tracing_enabled():
                return func(self, name, *args, **kwargs)

            tracer = trace.get_tracer("pharmastock.blob_store")
            with tracer.start_as_current_span(f"pharmastock.blob_store.{operation}") as span:
                span.set_attribute(
                    "pharmastock.blob_name_sha256",
                    hashlib.sha256(name.encode("utf-8")).hexdigest(),
                )
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                try:
                    result = func(self, name, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise
                _add_result_attributes(span, result, operation)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any, operation: str) -> None:
    """Add result-based attributes to span safely."""
    if isinstance(result, bytes):
        span.set_attribute("pharmastock.blob_size_bytes", len(result))
    elif isinstance(result, BlobRef):
        span.set_attribute("pharmastock.blob_version_tag", result.version_tag)
    elif operation == "list" and isinstance(result, list):
        span.set_attribute("pharmastock.blob_count", len(result))
