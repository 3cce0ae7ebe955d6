"""
Scheduler Service - runs the archiver once per archival window
Runs as its own process alongside the API
"""

import asyncio
import logging
from typing import Callable

from wxstation.services.archiver import ArchiveReconciler, ArchiveResult, window_bounds
from wxstation.services.sample_log import now_ms

logger = logging.getLogger(__name__)

MAX_PENDING_WINDOWS = 48


class ArchiveScheduler:
    """Scheduler for periodic archive runs."""

    def __init__(
        self,
        reconciler: ArchiveReconciler,
        window_minutes: int = 60,
        delay_seconds: int = 60,
        poll_seconds: float = 30,
        clock: Callable[[], int] = now_ms,
    ):
        self.reconciler = reconciler
        self.window_minutes = window_minutes
        self.delay_seconds = delay_seconds
        self.poll_seconds = poll_seconds
        self.clock = clock
        self.running = False
        self._last_window_end: int | None = None
        self._pending: list[tuple[int, int]] = []
        self._last_result: ArchiveResult | None = None

    @property
    def last_result(self) -> ArchiveResult | None:
        return self._last_result

    async def start(self):
        """Start the scheduler loop."""
        self.running = True
        logger.info("Archive scheduler started (every %s min, policy=%s)",
                    self.window_minutes, self.reconciler.policy)

        while self.running:
            try:
                await self.tick()
            except Exception:
                logger.exception("Scheduler error")

            await asyncio.sleep(self.poll_seconds)

    def stop(self):
        """Stop the scheduler."""
        self.running = False
        logger.info("Archive scheduler stopped")

    @property
    def pending(self) -> list[tuple[int, int]]:
        return list(self._pending)

    async def tick(self) -> ArchiveResult | None:
        """Archive the latest closed window and retry windows that failed earlier."""
        start, end = window_bounds(self.clock(), self.window_minutes, self.delay_seconds)
        if end != self._last_window_end:
            self._last_window_end = end
            self._pending.append((start, end))
            # Oldest windows are dropped once the backlog is full
            del self._pending[:-MAX_PENDING_WINDOWS]

        result = None
        for window in list(self._pending):
            result = await self.reconciler.archive(*window)
            self._last_result = result
            if not result.ok:
                logger.error("Archive window %s-%s failed: %s", window[0], window[1], result.message)
                break
            self._pending.remove(window)
            logger.info("Archive window %s-%s: %s (%s)", window[0], window[1], result.message, result.path)
        return result
