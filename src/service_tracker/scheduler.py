"""
Poll scheduler: the state machine tying directory resolution, enumeration and
address resolution together.

Each state is a coroutine handler returning the next state. Handlers run
strictly one after another, so at most one remote call is in flight per
scheduler. Failures never escape the loop: they are recorded on the poll state
and routed to the fault state, which waits with exponential backoff before
re-entering the cycle.

Usage:
    scheduler = PollScheduler(config, pool)
    task = asyncio.create_task(scheduler.run())
    ...
    scheduler.trigger()   # request an early poll
    await scheduler.stop()
"""

import asyncio
import builtins
import logging
import time
from collections.abc import Callable
from typing import Any

from .addresses import BatchAddressResolver
from .config import TrackerConfig
from .directory import DirectoryResolver
from .enumerator import InstanceEnumerator
from .errors import AmbiguousNameError, IncompleteDataError, TransportError
from .metrics import TrackerMetrics
from .models import PendingBatch, PollerState, PollState, RetryCounter
from .pool import AddressPool
from .transport import HttpTransport, LocationClients

logger = logging.getLogger(__name__)

FAULT_ERRORS = (AmbiguousNameError, TransportError, IncompleteDataError)


def wake_deadline(min_ready: float, deadline: float, trigger_time: float) -> float:
    """
    Return the new idle wake-up time after an external trigger.

    A trigger at or after ``min_ready`` wakes immediately; an earlier trigger
    pulls the wake-up forward to ``min_ready`` but never pushes it back.
    """
    if trigger_time >= min_ready:
        return trigger_time
    return min(deadline, min_ready)


class PollScheduler:
    """Tracks one application/service pair and publishes its membership."""

    def __init__(
        self,
        config: TrackerConfig,
        pool: AddressPool,
        transport: HttpTransport | None = None,
        directory_client=None,
        location_clients: LocationClients | None = None,
        metrics: TrackerMetrics | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.config = config
        self.pool = pool
        self.state = PollerState.RESOLVE_APP
        self.poll_state = PollState(error_delay=config.min_poll)
        self.retries = RetryCounter()

        self._owns_transport = transport is None
        self.transport = transport or HttpTransport()
        self._clock = clock or time.monotonic

        log_extra = {"application": config.application, "service": config.service_name}
        self.log = logging.LoggerAdapter(logger, log_extra)
        self.metrics = (
            metrics.for_tracker(config.application, config.service_name) if metrics else None
        )

        self.directory = DirectoryResolver(
            directory_client or self.transport.client(config.directory_url),
            primary_application=config.primary_application,
            log_extra=log_extra,
        )
        self.enumerator = InstanceEnumerator(
            self.directory,
            pool,
            self.poll_state.queue,
            self.retries,
            shard=config.shard,
            tag_prefix=config.tag_prefix,
            metrics=self.metrics,
            log_extra=log_extra,
        )
        self.addresses = BatchAddressResolver(
            location_clients or LocationClients(self.transport, config.inventory_url),
            pool,
            self.poll_state.queue,
            self.retries,
            application=config.application,
            service=config.service_name,
            tag_prefix=config.tag_prefix,
            metrics=self.metrics,
            log_extra=log_extra,
        )

        self._trigger = asyncio.Event()
        self._stopped = asyncio.Event()
        self._handlers = {
            PollerState.RESOLVE_APP: self._resolve_app,
            PollerState.RESOLVE_SERVICE: self._resolve_service,
            PollerState.ENUMERATE: self._enumerate,
            PollerState.DRAIN_QUEUE: self._drain_queue,
            PollerState.RESOLVE_BATCH: self._resolve_batch,
            PollerState.IDLE: self._idle,
            PollerState.FAULT: self._fault,
        }

    @property
    def name(self) -> str:
        return self.config.service

    # Driving the machine

    async def step(self) -> PollerState:
        """Run the current state's handler and transition to the next state."""
        handler = self._handlers[self.state]
        try:
            next_state = await handler()
        except FAULT_ERRORS as e:
            self.poll_state.last_error = e
            next_state = PollerState.FAULT
        except Exception as e:
            self.log.exception("unexpected error in state %s", self.state.value)
            self.poll_state.last_error = e
            next_state = PollerState.FAULT

        self.state = next_state
        return next_state

    async def run(self) -> None:
        """Run the poll loop until ``stop()`` is called."""
        self.log.info(
            "tracking %s (poll every %.0f-%.0f sec)",
            self.config.service,
            self.config.min_poll,
            self.config.max_poll,
        )
        while not self._stopped.is_set():
            await self.step()
        self.log.info("stopped tracking %s", self.config.service)

    async def poll_once(self) -> bool:
        """
        Run one cycle until the scheduler would idle or fault.

        Returns True if the cycle reached idle without a fault.
        """
        if self.state in (PollerState.IDLE, PollerState.FAULT):
            self.state = self._recovery_state()

        while self.state not in (PollerState.IDLE, PollerState.FAULT):
            await self.step()

        if self.state == PollerState.FAULT:
            self.log.error("poll failed: %s", self.poll_state.last_error)
            return False
        return True

    def trigger(self) -> None:
        """Request an out-of-cycle poll. Has no effect outside idle."""
        if self.state != PollerState.IDLE:
            self.log.debug("ignoring trigger in state %s", self.state.value)
            return
        self._trigger.set()

    async def stop(self) -> None:
        self._stopped.set()
        self._trigger.set()

    async def close(self) -> None:
        await self.stop()
        if self._owns_transport:
            await self.transport.close()

    def _recovery_state(self) -> PollerState:
        if not self.directory.application_id:
            return PollerState.RESOLVE_APP
        if not self.directory.service_id:
            return PollerState.RESOLVE_SERVICE
        return PollerState.ENUMERATE

    # State handlers

    async def _resolve_app(self) -> PollerState:
        await self.directory.resolve_application(self.config.application)
        return PollerState.RESOLVE_SERVICE

    async def _resolve_service(self) -> PollerState:
        await self.directory.resolve_service(
            self.config.service_name, self.directory.application_id
        )
        return PollerState.ENUMERATE

    async def _enumerate(self) -> PollerState:
        await self.enumerator.enumerate(self.directory.service_id)
        if self.metrics is not None:
            self.metrics.set_pending_batches(len(self.poll_state.queue))
        return PollerState.DRAIN_QUEUE

    async def _drain_queue(self) -> PollerState:
        queue = self.poll_state.queue
        while queue:
            batch = self._live_batch(queue.popleft())
            if batch.instance_ids:
                self.poll_state.current_batch = batch
                return PollerState.RESOLVE_BATCH

        self.poll_state.last_poll = self._clock()
        if self.metrics is not None:
            self.metrics.record_poll()
            self.metrics.set_pending_batches(0)
        return PollerState.IDLE

    def _live_batch(self, batch: PendingBatch) -> PendingBatch:
        """Drop ids that left the snapshot after the batch was queued."""
        snapshot = self.enumerator.snapshot
        live = [instance_id for instance_id in batch.instance_ids if instance_id in snapshot]
        if len(live) != len(batch.instance_ids):
            self.log.debug(
                "discarding %d departed instance(s) from %s batch",
                len(batch.instance_ids) - len(live),
                batch.location,
            )
        return PendingBatch(location=batch.location, instance_ids=live)

    async def _resolve_batch(self) -> PollerState:
        batch = self.poll_state.current_batch
        self.poll_state.current_batch = None
        try:
            await self.addresses.resolve_batch(batch)
        finally:
            if self.metrics is not None:
                self.metrics.set_pending_batches(len(self.poll_state.queue))
        return PollerState.DRAIN_QUEUE

    async def _idle(self) -> PollerState:
        state = self.poll_state
        state.reset_backoff(self.config.min_poll)
        self._trigger.clear()

        min_ready = state.last_poll + self.config.min_poll
        deadline = state.last_poll + self.config.max_poll

        while not self._stopped.is_set():
            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            if not await self._wait_for_trigger(remaining):
                break
            self._trigger.clear()
            deadline = wake_deadline(min_ready, deadline, self._clock())

        return PollerState.ENUMERATE

    async def _fault(self) -> PollerState:
        state = self.poll_state
        delay = state.next_backoff(self.config.max_poll)
        if self.metrics is not None:
            self.metrics.record_fault(state.last_error)

        self.log.error("error during poll, retry after %.1f sec: %s", delay, state.last_error)
        await self._wait(delay)
        return self._recovery_state()

    # Timers

    async def _wait_for_trigger(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._trigger.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _wait(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return

    def get_status(self) -> builtins.dict[str, Any]:
        last_error = self.poll_state.last_error
        return {
            "service": self.config.service,
            "state": self.state.value,
            "application_id": self.directory.application_id,
            "service_id": self.directory.service_id,
            "instances": len(self.enumerator.snapshot),
            "pending_batches": len(self.poll_state.queue),
            "error_delay": self.poll_state.error_delay,
            "last_error": str(last_error) if last_error is not None else None,
        }
