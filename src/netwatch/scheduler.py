"""
Scheduler for the agent's recurring checks.

Each PeriodicTask runs its own loop: one cycle, then wait for the
interval or for shutdown. A slow cycle delays the next one but cycles of
the same task never overlap. A failing cycle is logged and the loop
carries on.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """A function run every `interval` seconds until stopped."""

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Any],
        run_immediately: bool = False,
    ):
        """
        Args:
            name: Task name used in logs
            interval: Seconds between the end of one cycle and the next
            func: Sync function (run in a worker thread) or coroutine function
            run_immediately: Run the first cycle at start instead of after one interval
        """
        self.name = name
        self.interval = interval
        self.func = func
        self.run_immediately = run_immediately
        self.cycles = 0
        self.failures = 0

    async def run_cycle(self) -> Any:
        """Run one cycle, logging instead of raising on failure."""
        try:
            if inspect.iscoroutinefunction(self.func):
                return await self.func()
            return await asyncio.to_thread(self.func)
        except Exception as e:
            self.failures += 1
            logger.error(f"Error in {self.name} cycle: {e}")
            return None
        finally:
            self.cycles += 1

    async def run(self, shutdown_event: asyncio.Event) -> None:
        logger.info(f"{self.name} started (interval={self.interval}s)")

        if self.run_immediately:
            await self.run_cycle()

        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass
            await self.run_cycle()

        logger.info(f"{self.name} stopped after {self.cycles} cycles")


class MonitorScheduler:
    """Starts periodic tasks and keeps them running until stop()."""

    def __init__(self):
        self._tasks: list[PeriodicTask] = []
        self._running: list[asyncio.Task] = []
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks)

    @property
    def is_running(self) -> bool:
        return bool(self._running)

    def add(
        self,
        name: str,
        interval: float,
        func: Callable[[], Any],
        run_immediately: bool = False,
    ) -> PeriodicTask:
        task = PeriodicTask(name, interval, func, run_immediately)
        self._tasks.append(task)
        return task

    def start(self) -> None:
        """Start every registered task on the running event loop."""
        if self._running:
            return
        self._shutdown_event = asyncio.Event()
        for task in self._tasks:
            self._running.append(
                asyncio.create_task(task.run(self._shutdown_event), name=task.name)
            )
        logger.info(f"Scheduler started {len(self._running)} tasks")

    async def stop(self, timeout: float = 10.0) -> None:
        """Signal shutdown and wait for tasks; cancel any that overrun timeout."""
        if not self._running:
            return
        self._shutdown_event.set()

        done, pending = await asyncio.wait(self._running, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"Cancelled {len(pending)} tasks that did not stop in time")

        self._running = []
        logger.info("Scheduler stopped")
