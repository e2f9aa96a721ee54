"""Periodic triggers for the orchestrator.

Each tick spawns its job as a task instead of awaiting it, so a slow cycle
does not delay the ticker and an overlapping trigger reaches the
orchestrator's reentrancy guard, where it is dropped.
"""

import asyncio
from collections.abc import Awaitable, Callable

from hedgekeeper.logging import get_logger

logger = get_logger(__name__)


class CycleScheduler:
    """Owns named ticker loops that fire jobs at fixed intervals."""

    def __init__(self) -> None:
        self._jobs: list[tuple[str, float, Callable[[], Awaitable[object]]]] = []
        self._tickers: list[asyncio.Task] = []  # type: ignore[type-arg]
        self._inflight: set[asyncio.Task] = set()  # type: ignore[type-arg]
        self._running = False

    def add_job(self, name: str, interval: float, job: Callable[[], Awaitable[object]]) -> None:
        if interval <= 0:
            raise ValueError(f"Interval for {name} must be positive, got {interval}")
        self._jobs.append((name, interval, job))

    @property
    def job_names(self) -> list[str]:
        return [name for name, _, _ in self._jobs]

    async def start(self) -> None:
        if self._running:
            logger.warning("scheduler_already_running")
            return
        self._running = True
        for name, interval, job in self._jobs:
            self._tickers.append(asyncio.create_task(self._tick_loop(name, interval, job)))
        logger.info("scheduler_started", jobs=self.job_names)

    async def stop(self) -> None:
        """Stop ticking and wait for in-flight jobs to finish."""
        self._running = False
        for ticker in self._tickers:
            ticker.cancel()
        await asyncio.gather(*self._tickers, return_exceptions=True)
        self._tickers.clear()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("scheduler_stopped")

    async def _tick_loop(
        self, name: str, interval: float, job: Callable[[], Awaitable[object]]
    ) -> None:
        while self._running:
            task = asyncio.create_task(self._run_job(name, job))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            await asyncio.sleep(interval)

    async def _run_job(self, name: str, job: Callable[[], Awaitable[object]]) -> None:
        try:
            await job()
        except Exception:
            logger.error("scheduled_job_error", job=name, exc_info=True)
