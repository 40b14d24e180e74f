"""Background worker that triggers ingestion runs on a fixed interval.

Runs execute in a worker thread so the event loop stays responsive. A run
always drains its eligible files; ``stop()`` cancels only the wait between
runs and the await on the current run.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from pharmastock.services.ingestion.orchestrator import RunSummary

logger = logging.getLogger(__name__)


class IngestionWorker:
    """Interval scheduler for ingestion runs."""

    def __init__(self, run_fn: Callable[[], RunSummary], interval_seconds: float = 300) -> None:
        """Initialize worker.

        Args:
            run_fn: Callable performing one run (e.g. ``orchestrator.run``).
            interval_seconds: Seconds between the end of a run and the next one.
        """
        self._run_fn = run_fn
        self._interval_seconds = interval_seconds
        self._running = False
        self._task: asyncio.Task | None = None
        self.last_summary: RunSummary | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the worker."""
        if self._running:
            logger.warning("Worker already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Ingestion worker started (interval=%ss)", self._interval_seconds)

    async def stop(self) -> None:
        """Stop the worker."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Ingestion worker stopped")

    async def run_once(self) -> RunSummary:
        """Execute a single run in a worker thread."""
        summary = await asyncio.to_thread(self._run_fn)
        self.last_summary = summary
        return summary

    async def _run_loop(self) -> None:
        """Main scheduling loop."""
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Error in ingestion run: %s", e, exc_info=True)

            await asyncio.sleep(self._interval_seconds)
