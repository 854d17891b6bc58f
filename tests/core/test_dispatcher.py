"""Tests for the request dispatcher."""

import asyncio
from collections.abc import Iterable

import pytest

from outbound_queue.core.dispatcher import Dispatcher
from outbound_queue.ports.http import Method, Request, RequestOutcome, ServerError
from outbound_queue.ports.lifecycle import LifecycleCallback
from outbound_queue.ports.settings import SettingsPort
from outbound_queue.ports.store import QueueStorePort

__all__ = []


class InMemoryStore(QueueStorePort):
    """Store keeping the last saved snapshot as copies."""

    def __init__(self, initial: Iterable[Request] = ()) -> None:
        self.snapshot: list[Request] = [r.model_copy() for r in initial]
        self.saves = 0

    def load(self) -> list[Request]:
        return [r.model_copy() for r in self.snapshot]

    def save(self, requests: list[Request]) -> None:
        self.snapshot = [r.model_copy() for r in requests]
        self.saves += 1


class FakeLifecycle:
    """Lifecycle source with a settable connectivity flag."""

    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.subscribers: list[tuple[LifecycleCallback, LifecycleCallback]] = []

    def has_connectivity(self) -> bool:
        return self.connected

    def subscribe(self, on_foreground: LifecycleCallback, on_background: LifecycleCallback) -> None:
        self.subscribers.append((on_foreground, on_background))

    def unsubscribe(
        self, on_foreground: LifecycleCallback, on_background: LifecycleCallback
    ) -> None:
        self.subscribers.remove((on_foreground, on_background))


class ScriptedTransport:
    """Transport failing each URL a scripted number of times, then succeeding."""

    def __init__(self, failures: dict[str, int] | None = None) -> None:
        self.failures = dict(failures or {})
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def execute(self, request: Request) -> RequestOutcome:
        self.calls.append(request.url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.failures.get(request.url, 0) > 0:
                self.failures[request.url] -= 1
                return RequestOutcome.failure(ServerError(503, {"error": "unavailable"}))
            return RequestOutcome.success({"ok": True})
        finally:
            self.in_flight -= 1


def make_request(name: str, retry_count: int = 0) -> Request:
    return Request(
        method=Method.POST,
        url=f"https://api.test/v2/{name}.json",
        auth_token="token",
        body='{"name": "%s"}' % name,
        retry_count=retry_count,
    )


def make_dispatcher(
    store: InMemoryStore | None = None,
    transport: ScriptedTransport | None = None,
    lifecycle: FakeLifecycle | None = None,
    flush_interval_sec: float = 60.0,
) -> tuple[Dispatcher, InMemoryStore, ScriptedTransport, FakeLifecycle]:
    store = store or InMemoryStore()
    transport = transport or ScriptedTransport()
    lifecycle = lifecycle or FakeLifecycle()
    dispatcher = Dispatcher(
        settings=SettingsPort(flush_interval_sec=flush_interval_sec, max_retries=3),
        store=store,
        transport=transport,
        lifecycle=lifecycle,
    )
    return dispatcher, store, transport, lifecycle


def urls(requests: Iterable[Request]) -> list[str]:
    return [r.url for r in requests]


@pytest.mark.asyncio
async def test_enqueue_persists_accepted_requests_only() -> None:
    """Requests under the retry budget are queued and persisted; others never are."""
    dispatcher, store, _, _ = make_dispatcher()

    for retry_count in (0, 3, 1, 5, 2):
        dispatcher.enqueue(make_request(f"r{retry_count}", retry_count=retry_count))

    assert urls(dispatcher.pending) == urls(
        [make_request("r0"), make_request("r1"), make_request("r2")]
    )
    assert len(store.snapshot) == 3
    assert store.saves == 3


@pytest.mark.asyncio
async def test_enqueue_does_not_flush() -> None:
    """Enqueue only stores the request; draining needs an explicit flush."""
    dispatcher, _, transport, _ = make_dispatcher()
    dispatcher.start()
    try:
        dispatcher.enqueue(make_request("a"))
        await dispatcher.join()

        assert transport.calls == []
        assert len(dispatcher.pending) == 1
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_attempt_flush_without_connectivity_only_arms_timer() -> None:
    """Offline flushes keep the queue intact and arm a single timer."""
    dispatcher, store, transport, _ = make_dispatcher(lifecycle=FakeLifecycle(connected=False))
    dispatcher.start()
    try:
        dispatcher.enqueue(make_request("a"))
        dispatcher.enqueue(make_request("b"))

        dispatcher.attempt_flush()
        handle = dispatcher._timer._handle
        dispatcher.attempt_flush()
        dispatcher.attempt_flush()
        await dispatcher.join()

        assert dispatcher.timer_armed is True
        assert dispatcher._timer._handle is handle
        assert transport.calls == []
        assert len(dispatcher.pending) == 2
        assert len(store.snapshot) == 2
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_failed_request_is_requeued_at_tail_and_not_retried_in_same_pass() -> None:
    """Draining [A, B, C] where B fails once leaves exactly [B]."""
    a, b, c = make_request("a"), make_request("b"), make_request("c")
    transport = ScriptedTransport(failures={b.url: 1})
    dispatcher, store, _, _ = make_dispatcher(transport=transport)
    for request in (a, b, c):
        dispatcher.enqueue(request)

    dispatcher.start()
    try:
        await dispatcher.join()

        assert transport.calls == [a.url, b.url, c.url]
        assert dispatcher.pending == (b,)
        assert b.retry_count == 1
        assert urls(store.snapshot) == [b.url]
        assert store.snapshot[0].retry_count == 1
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_retry_appended_behind_requests_queued_during_pass() -> None:
    """A retry goes behind requests enqueued while the pass was running."""
    a, b = make_request("a"), make_request("b")
    late = make_request("late")
    transport = ScriptedTransport(failures={a.url: 1})
    dispatcher, _, _, _ = make_dispatcher(transport=transport)
    dispatcher.enqueue(a)
    dispatcher.enqueue(b)

    dispatcher.start()
    try:
        dispatcher.enqueue(late)
        await dispatcher.join()

        assert transport.calls == [a.url, b.url]
        assert urls(dispatcher.pending) == [late.url, a.url]
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_request_failing_fewer_times_than_budget_eventually_succeeds() -> None:
    """A request failing twice is removed after its third, successful attempt."""
    request = make_request("flaky")
    transport = ScriptedTransport(failures={request.url: 2})
    dispatcher, store, _, _ = make_dispatcher(transport=transport)
    dispatcher.enqueue(request)
    dispatcher.start()
    try:
        await dispatcher.join()
        assert request.retry_count == 1

        for _ in range(2):
            dispatcher.attempt_flush()
            await dispatcher.join()

        assert transport.calls == [request.url] * 3
        assert dispatcher.pending == ()
        assert store.snapshot == []
        assert request.retry_count == 2
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_request_failing_three_times_is_dropped() -> None:
    """The third failure discards the request for good."""
    request = make_request("broken")
    transport = ScriptedTransport(failures={request.url: 10})
    dispatcher, store, _, _ = make_dispatcher(transport=transport)
    dispatcher.enqueue(request)
    dispatcher.start()
    try:
        await dispatcher.join()
        for _ in range(3):
            dispatcher.attempt_flush()
            await dispatcher.join()

        assert transport.calls == [request.url] * 3
        assert request.retry_count == 3
        assert dispatcher.pending == ()
        assert store.snapshot == []
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_restart_resumes_persisted_queue() -> None:
    """A new dispatcher loads N persisted requests and flushes all of them."""
    persisted = [make_request(f"p{i}", retry_count=i % 3) for i in range(4)]
    store = InMemoryStore(persisted)
    dispatcher, _, transport, _ = make_dispatcher(store=store)

    assert urls(dispatcher.pending) == urls(persisted)

    dispatcher.start()
    try:
        await dispatcher.join()

        assert transport.calls == urls(persisted)
        assert dispatcher.pending == ()
        assert store.snapshot == []
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_requests_execute_one_at_a_time() -> None:
    """The worker never runs two requests concurrently."""
    transport = ScriptedTransport()
    dispatcher, _, _, _ = make_dispatcher(transport=transport)
    for i in range(5):
        dispatcher.enqueue(make_request(f"r{i}"))

    dispatcher.start()
    try:
        await dispatcher.join()
        assert transport.max_in_flight == 1
        assert len(transport.calls) == 5
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_transport_exception_counts_as_failure() -> None:
    """Unexpected transport exceptions increment the retry count."""

    class ExplodingTransport(ScriptedTransport):
        async def execute(self, request: Request) -> RequestOutcome:
            self.calls.append(request.url)
            raise RuntimeError("boom")

    request = make_request("a")
    dispatcher, _, _, _ = make_dispatcher(transport=ExplodingTransport())
    dispatcher.enqueue(request)
    dispatcher.start()
    try:
        await dispatcher.join()
        assert request.retry_count == 1
        assert dispatcher.pending == (request,)
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_timer_rearmed_after_pass() -> None:
    """The flush timer is disarmed while draining and re-armed at pass end."""
    dispatcher, _, _, _ = make_dispatcher()
    dispatcher.enqueue(make_request("a"))
    dispatcher.start()
    try:
        assert dispatcher.draining is True
        assert dispatcher.timer_armed is False

        await dispatcher.join()

        assert dispatcher.draining is False
        assert dispatcher.timer_armed is True
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_flush_during_pass_is_ignored() -> None:
    """A second flush while draining does not execute requests twice."""
    dispatcher, _, transport, _ = make_dispatcher()
    dispatcher.enqueue(make_request("a"))
    dispatcher.enqueue(make_request("b"))
    dispatcher.start()
    try:
        dispatcher.attempt_flush()
        dispatcher.on_foreground()
        await dispatcher.join()

        assert transport.calls == urls([make_request("a"), make_request("b")])
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_background_disarms_timer_and_foreground_flushes() -> None:
    """Lifecycle transitions stop the timer and trigger an immediate flush."""
    lifecycle = FakeLifecycle(connected=False)
    dispatcher, _, transport, _ = make_dispatcher(lifecycle=lifecycle)
    dispatcher.start()
    try:
        dispatcher.enqueue(make_request("a"))
        assert dispatcher.timer_armed is True

        on_foreground, on_background = lifecycle.subscribers[0]
        on_background()
        assert dispatcher.timer_armed is False

        lifecycle.connected = True
        on_foreground()
        await dispatcher.join()

        assert transport.calls == [make_request("a").url]
        assert dispatcher.pending == ()
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_pass_finishing_in_background_leaves_timer_disarmed() -> None:
    """Backgrounding mid-pass lets the pass finish without re-arming the timer."""
    dispatcher, _, transport, _ = make_dispatcher()
    dispatcher.enqueue(make_request("a"))
    dispatcher.start()
    try:
        dispatcher.on_background()
        await dispatcher.join()

        assert transport.calls == [make_request("a").url]
        assert dispatcher.timer_armed is False
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_timer_firing_triggers_flush() -> None:
    """Requests queued while offline are sent once the timer fires online."""
    lifecycle = FakeLifecycle(connected=False)
    dispatcher, _, transport, _ = make_dispatcher(lifecycle=lifecycle, flush_interval_sec=0.01)
    dispatcher.start()
    try:
        dispatcher.enqueue(make_request("a"))
        lifecycle.connected = True

        await asyncio.sleep(0.1)
        await dispatcher.join()

        assert transport.calls == [make_request("a").url]
        assert dispatcher.pending == ()
    finally:
        await dispatcher.stop()


@pytest.mark.asyncio
async def test_start_is_idempotent() -> None:
    """Starting twice subscribes and flushes only once."""
    dispatcher, _, transport, lifecycle = make_dispatcher()
    dispatcher.enqueue(make_request("a"))
    dispatcher.start()
    dispatcher.start()
    try:
        await dispatcher.join()
        assert len(lifecycle.subscribers) == 1
        assert transport.calls == [make_request("a").url]
    finally:
        await dispatcher.stop()

    assert lifecycle.subscribers == []


@pytest.mark.asyncio
async def test_enqueue_threadsafe_delivers_on_loop() -> None:
    """Requests handed over from another thread land in the queue."""
    dispatcher, store, _, _ = make_dispatcher(lifecycle=FakeLifecycle(connected=False))
    dispatcher.start()
    try:
        await asyncio.to_thread(dispatcher.enqueue_threadsafe, make_request("threaded"))
        await asyncio.sleep(0)

        assert urls(dispatcher.pending) == [make_request("threaded").url]
        assert len(store.snapshot) == 1
    finally:
        await dispatcher.stop()


def test_enqueue_threadsafe_requires_start() -> None:
    """enqueue_threadsafe needs the loop captured by start()."""
    dispatcher, _, _, _ = make_dispatcher()

    with pytest.raises(RuntimeError, match="not started"):
        dispatcher.enqueue_threadsafe(make_request("a"))


@pytest.mark.asyncio
async def test_enqueue_threadsafe_rejected_after_stop() -> None:
    dispatcher, _, _, _ = make_dispatcher(lifecycle=FakeLifecycle(connected=False))
    dispatcher.start()
    await dispatcher.stop()

    with pytest.raises(RuntimeError, match="not started"):
        dispatcher.enqueue_threadsafe(make_request("late"))
    assert dispatcher.pending == ()
