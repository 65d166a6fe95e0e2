"""Periodic synchronization loop.

Calls ``SyncOrchestrator.synchronize()`` on a fixed interval.  Each cycle
is one independent upload attempt; a failed cycle is simply followed by
the next one.

Usage::

    periodic = PeriodicSync(orchestrator, interval_seconds=300)
    task = asyncio.create_task(periodic.run())
    ...
    periodic.stop()
    await task
"""

from __future__ import annotations

import asyncio
import logging

from nightsync.nightscout.base import UploadResult
from nightsync.nightscout.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger("nightsync.nightscout.sync.scheduler")

DEFAULT_SYNC_INTERVAL_SECONDS = 300


class PeriodicSync:
    """Run ``synchronize()`` every ``interval_seconds`` until stopped."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS,
    ) -> None:
        self._orchestrator = orchestrator
        self._interval = interval_seconds
        self._stopped = asyncio.Event()
        self._cycles = 0

    @property
    def cycles(self) -> int:
        return self._cycles

    async def run_once(self) -> UploadResult | None:
        """Run a single cycle, logging instead of raising on failure."""
        self._cycles += 1
        try:
            result = await self._orchestrator.synchronize()
        except Exception as exc:
            logger.error("Sync cycle %d failed with exception: %s", self._cycles, exc)
            return None

        if result is None:
            logger.debug("Sync cycle %d: upload not configured", self._cycles)
        else:
            logger.info(
                "Sync cycle %d → %d readings, status=%s",
                self._cycles, result.readings_uploaded, result.status,
            )
        return result

    async def run(self) -> None:
        """Loop until ``stop()`` is called."""
        logger.info("Periodic sync started (every %ss)", self._interval)
        while not self._stopped.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Periodic sync stopped after %d cycles", self._cycles)

    def stop(self) -> None:
        self._stopped.set()
