"""
Periodic Task Scheduler.

Ticker plus cancellable task handle for the liveness monitors.
Each PeriodicTask owns its own failure boundary: an exception raised by one
cycle is logged and never reaches another task's loop.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from shared.config.logging import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """
    Runs an async callback on a fixed interval.

    The loop sleeps, then runs one cycle; a slow cycle delays the next tick
    instead of overlapping it. Cycles are never cancelled midway by the
    scheduler itself, only by stop().

    Usage:
        task = PeriodicTask("liveness_sweep", 60.0, sweeper.run_cycle)
        task.start()
        ...
        await task.stop()

    Tests drive cycles directly with `await task.run_once()`.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[Any]],
        run_immediately: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize periodic task.

        Args:
            name: Task name, used for asyncio task naming and logs.
            interval: Seconds between two cycles.
            callback: Coroutine function run once per cycle.
            run_immediately: Run one cycle right after start() before sleeping.
            sleep: Sleep function; injectable for tests.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._name = name
        self._interval = interval
        self._callback = callback
        self._run_immediately = run_immediately
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._cycles = 0
        self._errors = 0
        self._last_error: str | None = None
        self._last_run_at: float | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        """Whether the background loop is active."""
        return self._task is not None and not self._task.done()

    @property
    def cycles(self) -> int:
        """Number of completed cycles (successful or not)."""
        return self._cycles

    def start(self) -> bool:
        """
        Start the background loop. Safe to call more than once.

        Must be called from a running event loop.

        Returns:
            True if a new loop was started, False if already running.
        """
        if self.running:
            return False
        self._task = asyncio.create_task(self._loop(), name=self._name)
        logger.info(
            "Periodic task started",
            task=self._name,
            interval_seconds=self._interval,
        )
        return True

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Periodic task stopped", task=self._name, cycles=self._cycles)

    async def run_once(self) -> bool:
        """
        Run a single cycle inside the catch-and-log boundary.

        Returns:
            True if the cycle completed without raising.
        """
        self._last_run_at = time.time()
        try:
            await self._callback()
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._errors += 1
            self._last_error = str(e)
            logger.error(
                "Error in periodic task",
                task=self._name,
                error=str(e),
                exc_info=True,
            )
            return False
        finally:
            self._cycles += 1

    async def _loop(self) -> None:
        if self._run_immediately:
            await self.run_once()
        while True:
            await self._sleep(self._interval)
            await self.run_once()

    def get_stats(self) -> dict[str, Any]:
        """Get task statistics."""
        return {
            "name": self._name,
            "running": self.running,
            "interval_seconds": self._interval,
            "cycles": self._cycles,
            "errors": self._errors,
            "last_error": self._last_error,
            "last_run_at": self._last_run_at,
        }
