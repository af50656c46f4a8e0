"""
Periodic task scheduler.

Provides:
- Scheduler: runs registered async handlers at fixed intervals as asyncio
  tasks; a failing handler is logged and retried on its next tick
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Handler = Callable[[], Awaitable[Any]]


class SchedulerState(Enum):
    """Scheduler lifecycle states."""

    CREATED = auto()
    RUNNING = auto()
    STOPPED = auto()


@dataclass
class ScheduledTask:
    """A registered periodic handler."""

    name: str
    interval: float  # seconds
    handler: Handler
    run_immediately: bool = False
    runs: int = 0
    failures: int = 0
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval": self.interval,
            "runs": self.runs,
            "failures": self.failures,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
        }


class Scheduler:
    """
    Asyncio interval scheduler.

    Usage:
        scheduler = Scheduler()
        scheduler.register("wallet_sync", 600, engine.sync_wallet)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, shutdown_timeout: float = 10.0):
        self._entries: Dict[str, ScheduledTask] = {}
        self._tasks: List[asyncio.Task] = []
        self._shutdown_event = asyncio.Event()
        self._shutdown_timeout = shutdown_timeout
        self._state = SchedulerState.CREATED

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    def register(
        self,
        name: str,
        interval: float,
        handler: Handler,
        run_immediately: bool = False,
    ) -> ScheduledTask:
        """
        Register a periodic handler.

        Args:
            name: Unique task name
            interval: Seconds between runs
            handler: Coroutine function taking no arguments
            run_immediately: Run once at start instead of after the first interval

        Raises:
            ValueError: On duplicate name or non-positive interval
        """
        if name in self._entries:
            raise ValueError(f"Task already registered: {name}")
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")

        entry = ScheduledTask(name, interval, handler, run_immediately)
        self._entries[name] = entry

        if self.is_running:
            self._tasks.append(asyncio.create_task(self._run(entry), name=name))

        logger.debug(f"Registered task {name} every {interval}s")
        return entry

    async def run_once(self, name: str) -> bool:
        """Run a registered handler now; returns False if it failed."""
        entry = self._entries[name]
        entry.last_run = datetime.utcnow()
        try:
            await entry.handler()
            entry.runs += 1
            return True
        except Exception as e:
            entry.failures += 1
            entry.last_error = str(e)
            logger.error(f"Task {name} error: {e}")
            return False

    async def _run(self, entry: ScheduledTask) -> None:
        logger.info(f"{entry.name} task started")

        try:
            if entry.run_immediately:
                await self.run_once(entry.name)

            while not self._shutdown_event.is_set():
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=entry.interval)
                    break
                except asyncio.TimeoutError:
                    pass

                await self.run_once(entry.name)

        except asyncio.CancelledError:
            logger.info(f"{entry.name} task cancelled")

    async def start(self) -> None:
        """Start one asyncio task per registered handler."""
        if self.is_running:
            return

        self._shutdown_event.clear()
        self._tasks = [
            asyncio.create_task(self._run(entry), name=entry.name)
            for entry in self._entries.values()
        ]
        self._state = SchedulerState.RUNNING
        logger.info(f"Scheduler started with {len(self._tasks)} tasks")

    async def stop(self) -> None:
        """Signal shutdown and wait for tasks, cancelling stragglers."""
        if self._state != SchedulerState.RUNNING:
            return

        logger.info("Stopping scheduler...")
        self._shutdown_event.set()

        if self._tasks:
            done, pending = await asyncio.wait(self._tasks, timeout=self._shutdown_timeout)
            if pending:
                logger.warning(f"{len(pending)} tasks did not complete within timeout")
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        self._tasks = []
        self._state = SchedulerState.STOPPED
        logger.info("Scheduler stopped")

    async def wait_closed(self) -> None:
        """Block until stop() is called."""
        await self._shutdown_event.wait()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "state": self._state.name,
            "tasks": [entry.to_dict() for entry in self._entries.values()],
        }
