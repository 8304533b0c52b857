"""Tests for the client SDK."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest

from litestar_flagsync import (
    ClientOptions,
    EvaluationContext,
    EvaluationEvent,
    EvaluationReason,
    FlagSyncClient,
    RetryPolicy,
    Snapshot,
    StaleOrUnreachableError,
    TransportError,
)
from litestar_flagsync.client import HttpSnapshotTransport
from litestar_flagsync.serialization import encode_snapshot
from litestar_flagsync.types import ErrorCode

BASE_URL = "http://flags.test/api/v1"


class FakeTransport:
    """Serves queued snapshots; ``gate`` holds fetches until it is set."""

    def __init__(self, *snapshots: Snapshot, error: Exception | None = None) -> None:
        self.snapshots = list(snapshots)
        self.error = error
        self.gate: asyncio.Event | None = None
        self.etags: list[str | None] = []
        self.closed = False

    async def fetch(self, etag: str | None = None) -> Snapshot | None:
        self.etags.append(etag)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if not self.snapshots:
            return None
        return self.snapshots.pop(0)

    async def close(self) -> None:
        self.closed = True


class FakePush:
    """Push stream fed through a queue; ``None`` ends the connection."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[Snapshot | Exception | None] = asyncio.Queue()
        self.connections = 0

    async def stream(self) -> AsyncIterator[Snapshot]:
        self.connections += 1
        while True:
            item = await self.queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item


class EventCollector:
    def __init__(self) -> None:
        self.events: list[EvaluationEvent] = []

    def emit(self, event: EvaluationEvent) -> None:
        self.events.append(event)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


def make_options(**kwargs: Any) -> ClientOptions:
    params: dict[str, Any] = {
        "base_url": BASE_URL,
        "environment_key": "production",
        "poll_interval": None,
        "push_enabled": False,
        "push_retry_policy": RetryPolicy(
            max_retries=None, base_delay=0.001, jitter=False, retryable_exceptions=(TransportError,)
        ),
        "fetch_retry_policy": RetryPolicy(
            max_retries=2, base_delay=0.001, jitter=False, retryable_exceptions=(TransportError,)
        ),
    }
    params.update(kwargs)
    return ClientOptions(**params)


class TestClientLifecycle:
    """Tests for starting, readiness and shutdown."""

    async def test_fallback_before_sync(self) -> None:
        """Test that evaluations before the first sync return the caller's fallback."""
        client = FlagSyncClient(make_options(), transport=FakeTransport())

        result = client.sync.evaluate("new-ui", "fallback")

        assert result.value == "fallback"
        assert result.reason is EvaluationReason.FALLBACK
        assert result.error_code is ErrorCode.NOT_READY
        assert not client.is_ready()

    async def test_ready_after_initial_fetch(self, snapshot: Snapshot) -> None:
        async with FlagSyncClient(make_options(), transport=FakeTransport(snapshot)) as client:
            await client.ready(timeout=1)

            assert client.is_ready()
            assert client.snapshot is snapshot

    async def test_ready_timeout(self) -> None:
        """Test that an unreachable server surfaces as StaleOrUnreachableError."""
        transport = FakeTransport(error=TransportError("connection refused"))

        async with FlagSyncClient(make_options(), transport=transport) as client:
            with pytest.raises(StaleOrUnreachableError, match="production"):
                await client.ready(timeout=0.05)

            assert isinstance(client.last_error, TransportError)
            assert client.sync.get("new-ui", "fallback") == "fallback"

    async def test_start_twice_is_noop(self, snapshot: Snapshot) -> None:
        transport = FakeTransport(snapshot)
        client = FlagSyncClient(make_options(), transport=transport)

        await client.start()
        await client.start()
        await client.ready(timeout=1)
        await client.close()

        assert transport.etags == [None]

    async def test_start_after_close(self) -> None:
        client = FlagSyncClient(make_options(), transport=FakeTransport())
        await client.close()

        with pytest.raises(RuntimeError, match="closed"):
            await client.start()

    async def test_close_keeps_injected_transport_open(self) -> None:
        transport = FakeTransport()
        client = FlagSyncClient(make_options(), transport=transport)
        await client.start()

        await client.close()
        await client.close()

        assert not transport.closed

    async def test_http_transport_is_created(self) -> None:
        client = FlagSyncClient(make_options(push_enabled=True))

        assert isinstance(client._transport, HttpSnapshotTransport)
        assert client._push is client._transport

        await client.close()


class TestSnapshotOrdering:
    """Tests for snapshot replacement rules."""

    async def test_newer_snapshot_is_applied(self, snapshot_factory: Callable[..., Snapshot]) -> None:
        client = FlagSyncClient(make_options(), transport=FakeTransport())

        assert client.apply_snapshot(snapshot_factory(version=1))
        assert client.apply_snapshot(snapshot_factory(version=2))
        assert client.snapshot is not None
        assert client.snapshot.version == 2

    async def test_older_snapshot_is_ignored(self, snapshot_factory: Callable[..., Snapshot]) -> None:
        """Test that applying N and then N-1 keeps N."""
        client = FlagSyncClient(make_options(), transport=FakeTransport())
        client.apply_snapshot(snapshot_factory(version=5))

        assert not client.apply_snapshot(snapshot_factory(version=4))
        assert not client.apply_snapshot(snapshot_factory(version=5))
        assert client.snapshot is not None
        assert client.snapshot.version == 5

    async def test_push_during_slow_poll(self, snapshot_factory: Callable[..., Snapshot]) -> None:
        """Test that a v4 poll answer arriving after a v5 push leaves v5 in place."""
        transport = FakeTransport(snapshot_factory(version=4))
        transport.gate = asyncio.Event()
        push = FakePush()
        options = make_options(push_enabled=True)

        async with FlagSyncClient(options, transport=transport, push_transport=push) as client:
            await push.queue.put(snapshot_factory(version=5))
            await wait_until(lambda: client.snapshot is not None)

            transport.gate.set()
            await client.evaluate("new-ui")

            assert client.snapshot is not None
            assert client.snapshot.version == 5

    async def test_conditional_fetch_sends_etag(self, snapshot: Snapshot) -> None:
        transport = FakeTransport()
        client = FlagSyncClient(make_options(), transport=transport)
        client.apply_snapshot(snapshot)

        assert await client.refresh() is snapshot
        assert transport.etags == [snapshot.etag]

    async def test_refresh_applies_newer(self, snapshot_factory: Callable[..., Snapshot]) -> None:
        client = FlagSyncClient(make_options(), transport=FakeTransport(snapshot_factory(version=3)))

        refreshed = await client.refresh(timeout=1)

        assert refreshed is not None
        assert refreshed.version == 3

    async def test_refresh_timeout_keeps_cache(self, snapshot_factory: Callable[..., Snapshot]) -> None:
        """Test that a timed out refresh raises and leaves the cached snapshot in place."""
        transport = FakeTransport(snapshot_factory(version=9))
        transport.gate = asyncio.Event()
        client = FlagSyncClient(make_options(), transport=transport)
        client.apply_snapshot(snapshot_factory(version=2))

        with pytest.raises(TimeoutError):
            await client.refresh(timeout=0.01)

        assert client.snapshot is not None
        assert client.snapshot.version == 2

    async def test_refresh_error_propagates(self) -> None:
        client = FlagSyncClient(make_options(), transport=FakeTransport(error=TransportError("boom")))

        with pytest.raises(TransportError):
            await client.refresh()

    async def test_polling(self, snapshot_factory: Callable[..., Snapshot]) -> None:
        transport = FakeTransport(snapshot_factory(version=1), snapshot_factory(version=2))

        async with FlagSyncClient(make_options(poll_interval=0.01), transport=transport) as client:
            await wait_until(lambda: client.snapshot is not None and client.snapshot.version == 2)

    async def test_polling_survives_errors(self, snapshot: Snapshot) -> None:
        transport = FakeTransport(error=TransportError("flaky"))

        async with FlagSyncClient(make_options(poll_interval=0.01), transport=transport) as client:
            await wait_until(lambda: len(transport.etags) >= 3)
            transport.error = None
            transport.snapshots.append(snapshot)

            await wait_until(client.is_ready)

    async def test_polling_survives_malformed_payload(self, snapshot: Snapshot) -> None:
        """Test that a misshapen snapshot document never stops polling."""
        requests: list[httpx.Request] = []
        payloads = [b'{"environment_id": "env-1", "version": 2, "flags": {"x": "oops"}}'] * 5

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            body = payloads.pop(0) if payloads else encode_snapshot(snapshot)
            return httpx.Response(200, content=body)

        options = make_options(poll_interval=0.01)
        http_client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))

        async with FlagSyncClient(options, transport=HttpSnapshotTransport(options, client=http_client)) as client:
            await wait_until(client.is_ready)

            assert len(requests) > 5
            assert client._tasks

        await http_client.aclose()

    async def test_polling_survives_unexpected_errors(self, snapshot: Snapshot) -> None:
        transport = FakeTransport(error=RuntimeError("transport bug"))

        async with FlagSyncClient(make_options(poll_interval=0.01), transport=transport) as client:
            await wait_until(lambda: len(transport.etags) >= 3)
            assert isinstance(client.last_error, RuntimeError)
            transport.error = None
            transport.snapshots.append(snapshot)

            await wait_until(client.is_ready)

    async def test_initial_fetch_is_retried(self, snapshot: Snapshot) -> None:
        """Test that a transient failure of the first fetch is retried before polling takes over."""
        transport = FakeTransport(snapshot)
        failures = [TransportError("connection refused")]
        fetch = transport.fetch

        async def flaky_fetch(etag: str | None = None) -> Snapshot | None:
            if failures:
                transport.etags.append(etag)
                raise failures.pop()
            return await fetch(etag)

        transport.fetch = flaky_fetch  # type: ignore[method-assign]

        async with FlagSyncClient(make_options(), transport=transport) as client:
            await client.ready(timeout=1)

            assert transport.etags == [None, None]
            assert client.last_error is None

    async def test_initial_fetch_gives_up_after_retries(self) -> None:
        transport = FakeTransport(error=TransportError("connection refused"))

        async with FlagSyncClient(make_options(), transport=transport) as client:
            await wait_until(lambda: client.last_error is not None)

            assert len(transport.etags) == 3
            assert not client.is_ready()


class TestPushConnection:
    """Tests for the push loop."""

    async def test_reconnects_after_stream_ends(self, snapshot_factory: Callable[..., Snapshot]) -> None:
        push = FakePush()

        async with FlagSyncClient(
            make_options(push_enabled=True), transport=FakeTransport(), push_transport=push
        ) as client:
            await push.queue.put(snapshot_factory(version=1))
            await push.queue.put(None)
            await push.queue.put(snapshot_factory(version=2))

            await wait_until(lambda: client.snapshot is not None and client.snapshot.version == 2)

            assert push.connections == 2

    async def test_reconnects_after_error(self, snapshot: Snapshot) -> None:
        """Test that a dropped stream is retried and recorded as the last error."""
        push = FakePush()

        async with FlagSyncClient(
            make_options(push_enabled=True), transport=FakeTransport(), push_transport=push
        ) as client:
            await push.queue.put(TransportError("stream dropped"))
            await wait_until(lambda: push.connections == 2)
            await push.queue.put(snapshot)

            await wait_until(client.is_ready)
            assert isinstance(client.last_error, TransportError)

    async def test_gives_up_after_retry_budget(self) -> None:
        push = FakePush()
        options = make_options(
            push_enabled=True,
            push_retry_policy=RetryPolicy(max_retries=1, base_delay=0.001, jitter=False),
        )

        async with FlagSyncClient(options, transport=FakeTransport(), push_transport=push) as client:
            await push.queue.put(ConnectionError("refused"))
            await push.queue.put(ConnectionError("refused"))

            await wait_until(lambda: not client._tasks)

            assert push.connections == 2


class TestListeners:
    """Tests for update listeners."""

    async def test_listener_receives_applied_snapshots(self, snapshot_factory: Callable[..., Snapshot]) -> None:
        client = FlagSyncClient(make_options(), transport=FakeTransport())
        received: list[int] = []
        client.on_update(lambda snapshot: received.append(snapshot.version))

        client.apply_snapshot(snapshot_factory(version=1))
        client.apply_snapshot(snapshot_factory(version=1))
        client.apply_snapshot(snapshot_factory(version=2))

        assert received == [1, 2]

    async def test_unsubscribe(self, snapshot: Snapshot) -> None:
        client = FlagSyncClient(make_options(), transport=FakeTransport())
        received: list[Snapshot] = []
        unsubscribe = client.on_update(received.append)

        unsubscribe()
        unsubscribe()
        client.apply_snapshot(snapshot)

        assert received == []

    async def test_failing_listener_does_not_block_others(self, snapshot: Snapshot) -> None:
        client = FlagSyncClient(make_options(), transport=FakeTransport())
        received: list[Snapshot] = []

        def broken(snapshot: Snapshot) -> None:
            raise RuntimeError("listener bug")

        client.on_update(broken)
        client.on_update(received.append)

        assert client.apply_snapshot(snapshot)
        assert received == [snapshot]

    async def test_no_listener_after_close(self, snapshot: Snapshot) -> None:
        """Test that nothing is applied or announced once the client is closed."""
        client = FlagSyncClient(make_options(), transport=FakeTransport())
        received: list[Snapshot] = []
        client.on_update(received.append)

        await client.close()

        assert not client.apply_snapshot(snapshot)
        assert received == []


class TestClientEvaluation:
    """Tests for evaluation through the client."""

    @pytest.fixture
    def client(self, snapshot: Snapshot) -> FlagSyncClient:
        client = FlagSyncClient(make_options(), transport=FakeTransport())
        client.apply_snapshot(snapshot)
        return client

    async def test_identified_context(self, client: FlagSyncClient) -> None:
        client.identify(EvaluationContext(targeting_key="user-42", attributes={"plan": "enterprise"}))

        result = await client.evaluate("new-ui", False)

        assert result.value is True
        assert result.reason is EvaluationReason.RULE_MATCH
        assert result.matched_rule_id == "enterprise"

    async def test_rollout_bucket(self, client: FlagSyncClient) -> None:
        """Test that rollout buckets follow the identified targeting key."""
        client.identify(EvaluationContext(targeting_key="user-42"))
        assert await client.is_enabled("new-ui") is False

        client.identify(EvaluationContext(targeting_key="dave"))
        assert await client.is_enabled("new-ui") is True

    async def test_per_call_context_is_merged(self, client: FlagSyncClient) -> None:
        """Test that per-call attributes override identified ones for that call only."""
        client.identify(EvaluationContext(targeting_key="user-42", attributes={"plan": "free"}))

        assert await client.get("new-ui", False, EvaluationContext(attributes={"plan": "enterprise"})) is True
        assert client.context.attributes == {"plan": "free"}
        assert await client.get("new-ui", False) is False

    async def test_reset_keeps_snapshot(self, client: FlagSyncClient, snapshot: Snapshot) -> None:
        client.identify(EvaluationContext(targeting_key="user-42"))

        client.reset()

        assert client.context.targeting_key is None
        assert client.context.is_anonymous
        assert client.snapshot is snapshot

    async def test_unknown_flag_returns_fallback(self, client: FlagSyncClient) -> None:
        result = await client.evaluate("ghost", "fallback")

        assert result.value == "fallback"
        assert result.reason is EvaluationReason.ERROR
        assert await client.get("ghost", "fallback") == "fallback"

    async def test_sync_accessor(self, client: FlagSyncClient) -> None:
        client.identify(EvaluationContext(targeting_key="dave"))

        assert client.sync.is_enabled("new-ui") is True
        assert client.sync.get("theme", "light") == "light"
        assert client.sync.get("ghost", 3) == 3

    async def test_async_get_waits_for_initial_fetch(self, snapshot: Snapshot) -> None:
        """Test that an async read issued during the initial fetch sees its result."""
        transport = FakeTransport(snapshot)
        transport.gate = asyncio.Event()
        client = FlagSyncClient(make_options(), transport=transport)
        client.identify(EvaluationContext(targeting_key="dave"))
        await client.start()

        pending = asyncio.create_task(client.get("new-ui", "fallback"))
        await asyncio.sleep(0.01)
        assert not pending.done()
        transport.gate.set()

        assert await pending is True
        await client.close()


class TestClientTelemetry:
    """Tests for evaluation events emitted by the client."""

    async def test_events_are_emitted(self, snapshot: Snapshot) -> None:
        collector = EventCollector()
        client = FlagSyncClient(
            make_options(project_id="proj-1"), transport=FakeTransport(), telemetry=collector
        )
        client.apply_snapshot(snapshot)
        client.identify(EvaluationContext(targeting_key="user-42", attributes={"plan": "enterprise"}))

        client.sync.get("new-ui")

        event = collector.events[0]
        assert event.flag_key == "new-ui"
        assert event.reason == "RULE_MATCH"
        assert event.environment_id == "env-1"
        assert event.project_id == "proj-1"
        assert event.context_attributes == ["plan"]
        assert event.duration_us is not None

    async def test_fallback_events_have_no_environment(self) -> None:
        collector = EventCollector()
        client = FlagSyncClient(make_options(), transport=FakeTransport(), telemetry=collector)

        client.sync.get("new-ui")

        assert collector.events[0].reason == "FALLBACK"
        assert collector.events[0].environment_id is None

    async def test_batched_upload(self, snapshot: Snapshot) -> None:
        """Test that enabled telemetry is uploaded to the server on close."""
        uploads: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.startswith("/api/v1/telemetry/"):
                uploads.append(json.loads(request.content))
                return httpx.Response(202, json={"accepted": 1, "rejected": 0})
            return httpx.Response(304)

        options = make_options(telemetry_enabled=True, project_id="proj-1", telemetry_flush_interval=3600)
        http_client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        client = FlagSyncClient(options, transport=HttpSnapshotTransport(options, client=http_client))
        client.apply_snapshot(snapshot)
        await client.start()

        client.sync.get("new-ui")
        await client.close()

        assert len(uploads) == 1
        assert uploads[0]["events"][0]["flag_key"] == "new-ui"
        await http_client.aclose()
