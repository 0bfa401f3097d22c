"""
Tracker manager

Runs one poll scheduler per configured application/service pair. Schedulers
share the HTTP transport and metrics registry but no mutable poll state.
"""

import asyncio
import builtins
import logging
from enum import Enum
from typing import Any

from .config import AppConfig
from .metrics import TrackerMetrics
from .pool import AddressPool
from .scheduler import PollScheduler
from .transport import HttpTransport

logger = logging.getLogger(__name__)


class ManagerState(Enum):
    """Tracker manager states."""

    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


class TrackerManager:
    """Starts, stops and triggers the trackers of one process."""

    def __init__(
        self,
        config: AppConfig,
        pool: AddressPool,
        transport: HttpTransport | None = None,
        metrics: TrackerMetrics | None = None,
        shutdown_timeout: float = 5.0,
    ):
        self.config = config
        self.shutdown_timeout = shutdown_timeout
        self.pool = pool
        self.transport = transport or HttpTransport(config.http)
        self.metrics = metrics or TrackerMetrics()
        self.state = ManagerState.STOPPED

        self.schedulers: builtins.dict[str, PollScheduler] = {
            tracker.service: PollScheduler(
                tracker, pool, transport=self.transport, metrics=self.metrics
            )
            for tracker in config.trackers
        }
        self._tasks: builtins.list[asyncio.Task] = []

    async def start(self) -> None:
        """Launch every scheduler as a background task."""
        if self.state != ManagerState.STOPPED:
            raise RuntimeError(f"Cannot start manager in state: {self.state}")

        for name, scheduler in self.schedulers.items():
            task = asyncio.create_task(scheduler.run(), name=f"tracker:{name}")
            self._tasks.append(task)

        self.state = ManagerState.RUNNING
        logger.info("Started %d tracker(s)", len(self._tasks))

    async def stop(self) -> None:
        """Stop every scheduler and close the shared transport."""
        if self.state == ManagerState.STOPPED:
            await self.transport.close()
            return

        self.state = ManagerState.STOPPING
        for scheduler in self.schedulers.values():
            await scheduler.stop()

        if self._tasks:
            _, pending = await asyncio.wait(self._tasks, timeout=self.shutdown_timeout)
            # Trackers still waiting on a remote call are cancelled.
            for task in pending:
                task.cancel()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, result in zip(self._tasks, results):
            if isinstance(result, Exception):
                logger.error("Tracker task %s failed: %s", task.get_name(), result)
        self._tasks.clear()

        await self.transport.close()
        self.state = ManagerState.STOPPED
        logger.info("Stopped all trackers")

    async def wait(self) -> None:
        """Wait until every tracker task has finished."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def trigger(self, service: str | None = None) -> None:
        """Trigger one tracker by ``<app>/<service>``, or all when omitted."""
        if service is None:
            for scheduler in self.schedulers.values():
                scheduler.trigger()
            return

        scheduler = self.schedulers.get(service)
        if scheduler is None:
            raise KeyError(f"Unknown tracker: {service}")
        scheduler.trigger()

    async def poll_once(self) -> builtins.dict[str, bool]:
        """Run one cycle of every tracker concurrently."""
        names = list(self.schedulers)
        results = await asyncio.gather(
            *(self.schedulers[name].poll_once() for name in names)
        )
        return dict(zip(names, results))

    def get_status(self) -> builtins.dict[str, Any]:
        return {
            "state": self.state.value,
            "trackers": [scheduler.get_status() for scheduler in self.schedulers.values()],
        }
