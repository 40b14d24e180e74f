"""HTTP trigger surface for stock ingestion.

Exposes a health check and an endpoint that performs one ingestion run on
demand. When the app is created with ``run_worker=True`` it also starts an
IngestionWorker for the lifetime of the process.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from pharmastock import __version__
from pharmastock.observability.tracing import configure_tracing, instrument_fastapi
from pharmastock.pipeline.worker import IngestionWorker
from pharmastock.services.ingestion.orchestrator import StockIngestionOrchestrator


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    time: str
    version: str


class RunResponse(BaseModel):
    """Aggregate counts of one ingestion run."""

    eligible: int
    processed: int
    failed: int
    duplicate: int


def create_app(
    orchestrator: StockIngestionOrchestrator,
    *,
    run_worker: bool = False,
    interval_seconds: float = 300,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        orchestrator: Fully wired orchestrator used by every trigger.
        run_worker: Start the interval worker on startup.
        interval_seconds: Worker interval.
    """
    worker = IngestionWorker(orchestrator.run, interval_seconds) if run_worker else None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if worker is not None:
            await worker.start()
        try:
            yield
        finally:
            if worker is not None:
                await worker.stop()

    app = FastAPI(
        title="Pharmastock Ingestion",
        description="Pharmacy stock file ingestion service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.state.worker = worker

    configure_tracing()
    instrument_fastapi(app)

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="ok",
            time=datetime.now(UTC).isoformat(),
            version=__version__,
        )

    @app.post("/v1/ingestion/runs", response_model=RunResponse)
    async def trigger_run(request: Request) -> RunResponse:
        """Run one ingestion pass and return its counts."""
        summary = await run_in_threadpool(request.app.state.orchestrator.run)
        return RunResponse(**summary.to_dict())

    return app
