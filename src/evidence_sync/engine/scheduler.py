"""Periodic trigger for queue processing passes."""

import asyncio
import logging

from evidence_sync.sync.processor import QueueProcessor

logger = logging.getLogger(__name__)


class QueueScheduler:
    """Runs processing passes on a fixed interval in a background task.

    A pass runs as soon as the scheduler starts, then every `interval`
    seconds. trigger() wakes the loop early for an on-demand pass.

    Example:
        scheduler = QueueScheduler(processor, interval=300)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, processor: QueueProcessor, interval: float = 300.0) -> None:
        self.processor = processor
        self.interval = interval

        self._task: asyncio.Task | None = None
        self._wake = asyncio.Event()
        self._passes = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pass_count(self) -> int:
        """Number of passes the loop has completed."""
        return self._passes

    def start(self) -> None:
        """Start the background loop. Must be called from a running event loop."""
        if self.running:
            return
        self._wake.clear()
        self._task = asyncio.create_task(self._run(), name="evidence-sync-scheduler")
        logger.info("Queue scheduler started, interval=%ss", self.interval)

    def trigger(self) -> None:
        """Request an immediate processing pass."""
        self._wake.set()

    async def _run(self) -> None:
        while True:
            try:
                await self.processor.process_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Processing pass error: %s", e, exc_info=True)
            self._passes += 1

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()

    async def stop(self) -> None:
        """Stop the background loop and wait for it to exit."""
        if self._task is None:
            return

        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Queue scheduler stopped, passes=%d", self._passes)
