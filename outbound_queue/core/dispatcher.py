"""Durable request queue with serial, retrying, timer-paced execution."""

import asyncio
import logging
from functools import partial

from outbound_queue.core.retry import RetryBudget
from outbound_queue.core.timer import FlushTimer
from outbound_queue.core.worker import SerialWorker
from outbound_queue.ports.http import Request, RequestOutcome, TransportPort
from outbound_queue.ports.lifecycle import LifecyclePort
from outbound_queue.ports.settings import SettingsPort
from outbound_queue.ports.store import QueueStorePort

__all__ = ["Dispatcher"]

logger = logging.getLogger(__name__)


class Dispatcher:
    """Owns the pending request queue and drains it over the network.

    Requests are persisted after every queue change and executed one at a
    time by a serial worker. Failed requests are re-appended at the tail
    until their retry budget runs out. Flushes are triggered by a one-shot
    timer, by app foreground transitions and at startup.

    All queue and timer state is confined to the event loop that calls
    start(); other threads must go through enqueue_threadsafe().
    """

    def __init__(
        self,
        settings: SettingsPort,
        store: QueueStorePort,
        transport: TransportPort,
        lifecycle: LifecyclePort,
    ) -> None:
        """Create the dispatcher and load the persisted queue.

        Args:
            settings: Flush interval and retry budget.
            store: Durable snapshot of the queue.
            transport: Executes individual requests.
            lifecycle: Connectivity and foreground/background source.
        """
        self._store = store
        self._transport = transport
        self._lifecycle = lifecycle
        self._budget = RetryBudget(max_retries=settings.max_retries)
        self._timer = FlushTimer(settings.flush_interval_sec, self._on_timer)
        self._worker = SerialWorker()
        self._queue: list[Request] = store.load()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._started = False
        self._draining = False
        self._backgrounded = False
        logger.info(f"Dispatcher loaded {len(self._queue)} pending request(s)")

    @property
    def pending(self) -> tuple[Request, ...]:
        """Snapshot of the live queue, in execution order."""
        return tuple(self._queue)

    @property
    def timer_armed(self) -> bool:
        return self._timer.armed

    @property
    def draining(self) -> bool:
        return self._draining

    # Lifecycle

    def start(self) -> None:
        """Start the worker, subscribe to lifecycle events and flush.

        Calling it again while started does nothing.
        """
        if self._started:
            return
        self._started = True
        self._loop = asyncio.get_running_loop()
        self._worker.start()
        self.attempt_flush()
        self._lifecycle.subscribe(self.on_foreground, self.on_background)

    async def stop(self) -> None:
        """Disarm the timer and stop the worker, abandoning the current pass."""
        if not self._started:
            return
        self._lifecycle.unsubscribe(self.on_foreground, self.on_background)
        self.stop_flush_timer()
        await self._worker.stop()
        self._draining = False
        self._started = False
        self._loop = None
        logger.info(f"Dispatcher stopped with {len(self._queue)} pending request(s)")

    async def join(self) -> None:
        """Wait for all work handed to the worker so far."""
        await self._worker.join()

    def on_foreground(self) -> None:
        self._backgrounded = False
        self.attempt_flush()

    def on_background(self) -> None:
        self._backgrounded = True
        self.stop_flush_timer()

    # Queue

    def enqueue(self, request: Request) -> None:
        """Append a request to the queue and persist it.

        Requests whose retry budget is exhausted are discarded. Does not
        trigger a flush.

        Args:
            request: Request to schedule.
        """
        if self._budget.exhausted(request):
            logger.debug(
                f"Dropping {request.method.value} {request.url} "
                f"after {request.retry_count} failed attempts"
            )
            return
        logger.debug(f"Adding {request.method.value} {request.url} to queue")
        self._queue.append(request)
        self._persist()

    def enqueue_threadsafe(self, request: Request) -> None:
        """Schedule enqueue() on the dispatcher loop from another thread.

        Raises:
            RuntimeError: If the dispatcher has not been started.
        """
        if self._loop is None:
            raise RuntimeError("Dispatcher not started; call start() first")
        self._loop.call_soon_threadsafe(self.enqueue, request)

    def attempt_flush(self) -> None:
        """Drain the queue if possible, otherwise wait for the timer."""
        if self._draining:
            logger.debug("Drain pass already in progress, skipping flush")
            return
        if not self._queue or not self._lifecycle.has_connectivity():
            self.start_flush_timer()
            return
        self.stop_flush_timer()
        self._drain(list(self._queue))

    def _drain(self, snapshot: list[Request]) -> None:
        self._draining = True
        logger.info(f"Flushing {len(snapshot)} request(s)")
        for request in snapshot:
            self._worker.submit(partial(self._execute, request))
        self._worker.submit(self._finish_pass)

    async def _execute(self, request: Request) -> None:
        try:
            outcome = await self._transport.execute(request)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Unexpected error executing {request.url}: {e}", exc_info=True)
            outcome = RequestOutcome.failure(e)

        if outcome.ok:
            logger.debug(f"Success {request.method.value} {request.url}: {outcome.body}")
            self._remove(request)
            self._persist()
            return

        logger.warning(
            f"Request {request.method.value} {request.url} failed "
            f"(attempt {request.retry_count + 1}/{self._budget.max_retries}): {outcome.error}"
        )
        request.record_failure()
        self._remove(request)
        self.enqueue(request)
        if self._budget.exhausted(request):
            # Dropped requests still need their removal persisted
            self._persist()

    async def _finish_pass(self) -> None:
        self._draining = False
        logger.info(f"Flush pass finished, {len(self._queue)} request(s) pending")
        if not self._backgrounded:
            self.start_flush_timer()

    def _remove(self, request: Request) -> None:
        for index, queued in enumerate(self._queue):
            if queued is request:
                del self._queue[index]
                return

    def _persist(self) -> None:
        self._store.save(list(self._queue))

    # Timer

    def start_flush_timer(self) -> None:
        self._timer.arm()

    def stop_flush_timer(self) -> None:
        self._timer.disarm()

    def _on_timer(self) -> None:
        self.stop_flush_timer()
        self.attempt_flush()
