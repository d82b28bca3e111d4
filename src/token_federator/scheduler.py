"""
Fixed-cadence driver of relay cycles.

The scheduler fires a callback every interval. A tick that arrives while the
previous cycle is still running is skipped, never queued, so two cycles never
overlap. Shutdown is honored between cycles: a running cycle is awaited, not
cancelled.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .notifier import Notifier

logger = logging.getLogger(__name__)


class Scheduler:
    """Runs an async callback on a fixed interval without overlapping runs."""

    def __init__(
        self,
        interval: float,
        callback: Callable[[], Awaitable[object]],
        notifier: Notifier | None = None
    ) -> None:
        """
        Args:
            interval: Seconds between ticks
            callback: Coroutine function running one cycle
            notifier: Sink for unhandled cycle errors (optional)
        """
        if interval <= 0:
            raise ValueError(f"Scheduler interval must be positive, got {interval}")
        self.interval = interval
        self.callback = callback
        self.notifier = notifier

        self.running = False
        self.ticks = 0
        self.skipped_ticks = 0
        self._current: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    @property
    def cycle_in_progress(self) -> bool:
        return self._current is not None and not self._current.done()

    def tick(self) -> bool:
        """
        Start a cycle unless one is still running.

        Returns:
            True if a cycle was started, False if the tick was skipped
        """
        self.ticks += 1
        if self.cycle_in_progress:
            self.skipped_ticks += 1
            logger.warning(
                f"Previous cycle still running, skipping tick {self.ticks} "
                f"({self.skipped_ticks} skipped so far)"
            )
            return False
        self._current = asyncio.create_task(self._run_guarded())
        return True

    async def _run_guarded(self) -> None:
        try:
            await self.callback()
        except Exception as e:
            logger.error(f"Unhandled error in cycle: {e}", exc_info=True)
            if self.notifier:
                await self.notifier.notify(f"Unhandled error in cycle: {type(e).__name__}: {e}")

    async def start(self) -> None:
        """Fire immediately, then every interval until stop() is called."""
        self.running = True
        self._stop_event.clear()
        logger.info(f"Scheduler started, running every {self.interval} seconds")

        try:
            while self.running:
                self.tick()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                    break  # Shutdown requested
                except asyncio.TimeoutError:
                    pass  # Next tick
        finally:
            await self.wait_idle()
            self.running = False
            logger.info("Scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait for the running cycle, if any, to finish."""
        if self._current is not None and not self._current.done():
            logger.info("Waiting for the running cycle to finish...")
            await asyncio.shield(self._current)

    def stop(self) -> None:
        """Request shutdown; honored between cycles."""
        self.running = False
        self._stop_event.set()
