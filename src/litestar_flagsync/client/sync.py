"""Client SDK keeping a local snapshot in sync with the server."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
import threading
import time
from typing import TYPE_CHECKING, Any

from litestar_flagsync.client.events import TelemetryBuffer
from litestar_flagsync.client.transport import HttpSnapshotTransport
from litestar_flagsync.context import EvaluationContext
from litestar_flagsync.engine import EvaluationEngine
from litestar_flagsync.exceptions import FlagSyncError, StaleOrUnreachableError
from litestar_flagsync.resilience import resilient_call
from litestar_flagsync.telemetry import EvaluationEvent

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from litestar_flagsync.client.config import ClientOptions
    from litestar_flagsync.client.transport import PushTransport, SnapshotTransport
    from litestar_flagsync.models.snapshot import Snapshot
    from litestar_flagsync.results import EvaluationResult
    from litestar_flagsync.telemetry import TelemetryEmitter

__all__ = ["FlagSyncClient", "SyncFlagAccessor"]

logger = logging.getLogger(__name__)


class SyncFlagAccessor:
    """Non-blocking evaluation against the cached snapshot.

    Before the first successful sync every call returns the fallback.
    """

    def __init__(self, client: FlagSyncClient) -> None:
        self._client = client

    def evaluate(
        self, flag_key: str, fallback: Any = None, context: EvaluationContext | None = None
    ) -> EvaluationResult:
        return self._client._evaluate(flag_key, fallback, context)

    def get(self, flag_key: str, fallback: Any = None, context: EvaluationContext | None = None) -> Any:
        value = self.evaluate(flag_key, fallback, context).value
        return fallback if value is None else value

    def is_enabled(self, flag_key: str, context: EvaluationContext | None = None) -> bool:
        return self.evaluate(flag_key, False, context).value is True


class FlagSyncClient:
    """Feature flag client backed by a locally cached snapshot.

    The client fetches the environment's snapshot once, then keeps it current
    through a push connection with polling as a fallback. Evaluations run
    locally against the cached snapshot and never wait for the network.
    Snapshots are only ever replaced by strictly newer versions, so
    out-of-order deliveries from push and poll are harmless.

    Args:
        options: Client options.
        transport: Snapshot fetch transport; HTTP by default.
        push_transport: Push transport; the HTTP transport when push is
            enabled and none is given.
        engine: Evaluation engine.
        telemetry: Receiver of evaluation events; a batched uploader is
            created when telemetry is enabled in ``options``.

    Example:
        >>> options = ClientOptions(base_url="http://localhost:8000/api/v1", environment_key="production")
        >>> async with FlagSyncClient(options) as client:  # doctest: +SKIP
        ...     await client.ready(timeout=5)
        ...     client.identify(EvaluationContext(targeting_key="user-42", attributes={"plan": "enterprise"}))
        ...     enabled = await client.is_enabled("new-ui")

    """

    def __init__(
        self,
        options: ClientOptions,
        transport: SnapshotTransport | None = None,
        push_transport: PushTransport | None = None,
        engine: EvaluationEngine | None = None,
        telemetry: TelemetryEmitter | None = None,
    ) -> None:
        self.options = options
        http_transport = None
        if transport is None or (push_transport is None and options.push_enabled):
            http_transport = HttpSnapshotTransport(options)
        self._transport: SnapshotTransport = transport or http_transport  # type: ignore[assignment]
        self._push: PushTransport | None = None
        if options.push_enabled:
            self._push = push_transport or http_transport
        self._owned_transport = http_transport
        self._engine = engine or EvaluationEngine()

        self._telemetry = telemetry
        self._telemetry_buffer: TelemetryBuffer | None = None
        if telemetry is None and options.telemetry_enabled and isinstance(self._transport, HttpSnapshotTransport):
            self._telemetry_buffer = TelemetryBuffer(
                self._transport.send_events,
                project_id=options.project_id or "",
                flush_interval=options.telemetry_flush_interval,
                max_batch_size=options.telemetry_batch_size,
                max_buffer_size=options.telemetry_buffer_size,
            )
            self._telemetry = self._telemetry_buffer

        self._snapshot: Snapshot | None = None
        self._swap_lock = threading.Lock()
        self._context = EvaluationContext()
        self._listeners: dict[int, Callable[[Snapshot], None]] = {}
        self._listener_ids = itertools.count()
        self._ready = asyncio.Event()
        self._initial_fetch: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        self.last_error: Exception | None = None
        self.sync = SyncFlagAccessor(self)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def start(self) -> None:
        """Start the initial fetch, the push connection and polling."""
        if self._initial_fetch is not None:
            return
        if self._closed:
            raise RuntimeError("FlagSyncClient is closed")

        self._initial_fetch = asyncio.create_task(self._fetch_initial())
        if self._push is not None:
            self._spawn(self._push_loop())
        if self.options.poll_interval is not None:
            self._spawn(self._poll_loop(self.options.poll_interval))
        if self._telemetry_buffer is not None:
            self._telemetry_buffer.start()

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def ready(self, timeout: float | None = None) -> None:
        """Wait until a snapshot has been synchronised.

        Raises:
            StaleOrUnreachableError: If no snapshot arrived within ``timeout``.

        """
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except TimeoutError:
            raise StaleOrUnreachableError(
                f"no snapshot for environment '{self.options.environment_key}' after {timeout}s"
            ) from self.last_error

    def is_ready(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> Snapshot | None:
        """The cached snapshot."""
        return self._snapshot

    async def close(self) -> None:
        """Stop push and polling; no update listener fires afterwards."""
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()

        tasks = list(self._tasks)
        if self._initial_fetch is not None:
            tasks.append(self._initial_fetch)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        if self._telemetry_buffer is not None:
            await self._telemetry_buffer.close()
        if self._owned_transport is not None:
            await self._owned_transport.close()
        logger.debug("Flag sync client for '%s' closed", self.options.environment_key)

    async def __aenter__(self) -> FlagSyncClient:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Synchronisation
    # -------------------------------------------------------------------------
    def apply_snapshot(self, snapshot: Snapshot) -> bool:
        """Swap in a snapshot if it is newer than the cached one.

        Returns:
            Whether the snapshot was applied.

        """
        with self._swap_lock:
            if self._closed or not snapshot.supersedes(self._snapshot):
                return False
            self._snapshot = snapshot

        self._ready.set()
        logger.debug("Applied snapshot v%d for '%s'", snapshot.version, self.options.environment_key)
        for listener in list(self._listeners.values()):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Update listener failed")
        return True

    async def _fetch(self) -> Snapshot | None:
        current = self._snapshot
        fetched = await self._transport.fetch(current.etag if current else None)
        if fetched is not None:
            self.apply_snapshot(fetched)
        return self._snapshot

    async def _fetch_initial(self) -> None:
        try:
            await resilient_call(self._fetch, retry_policy=self.options.fetch_retry_policy)
        except FlagSyncError as exc:
            self.last_error = exc
            logger.warning("Initial snapshot fetch for '%s' failed: %s", self.options.environment_key, exc)
        except Exception as exc:
            self.last_error = exc
            logger.exception("Initial snapshot fetch for '%s' failed", self.options.environment_key)

    async def refresh(self, timeout: float | None = None) -> Snapshot | None:
        """Force a snapshot fetch.

        A fetch cancelled by ``timeout`` leaves the cached snapshot untouched.

        Raises:
            TimeoutError: If the fetch did not finish within ``timeout``.
            TransportError: If the fetch failed.

        """
        current = self._snapshot
        fetched = await asyncio.wait_for(self._transport.fetch(current.etag if current else None), timeout)
        if fetched is not None:
            self.apply_snapshot(fetched)
        return self._snapshot

    async def _poll_loop(self, interval: float) -> None:
        while not self._closed:
            await asyncio.sleep(interval)
            try:
                await self._fetch()
                self.last_error = None
            except FlagSyncError as exc:
                self.last_error = exc
                logger.warning("Polling '%s' failed: %s", self.options.environment_key, exc)
            except Exception as exc:
                self.last_error = exc
                logger.exception("Polling '%s' failed", self.options.environment_key)

    async def _push_loop(self) -> None:
        assert self._push is not None
        policy = self.options.push_retry_policy
        attempt = 0
        while not self._closed:
            try:
                async for snapshot in self._push.stream():
                    attempt = 0
                    self.apply_snapshot(snapshot)
                logger.debug("Push stream for '%s' ended, reconnecting", self.options.environment_key)
            except Exception as exc:
                self.last_error = exc
                if not policy.should_retry(exc) and not isinstance(exc, FlagSyncError):
                    logger.exception("Push stream for '%s' failed", self.options.environment_key)
                else:
                    logger.info("Push stream for '%s' dropped: %s", self.options.environment_key, exc)

            if not policy.can_retry(attempt):
                logger.warning(
                    "Giving up push for '%s' after %d attempts, relying on polling",
                    self.options.environment_key,
                    attempt,
                )
                return
            delay = policy.get_delay(attempt)
            attempt += 1
            await asyncio.sleep(delay)

    # -------------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------------
    def identify(self, context: EvaluationContext) -> None:
        """Set the context used by every evaluation."""
        self._context = context

    def reset(self) -> None:
        """Forget the identified context; the snapshot is kept."""
        self._context = EvaluationContext()

    @property
    def context(self) -> EvaluationContext:
        return self._context

    def on_update(self, listener: Callable[[Snapshot], None]) -> Callable[[], None]:
        """Register a listener called with every applied snapshot.

        Returns:
            A function removing the listener.

        """
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------
    def _evaluate(self, flag_key: str, fallback: Any, context: EvaluationContext | None) -> EvaluationResult:
        merged = self._context.merge(context) if context is not None else self._context
        started = time.perf_counter()
        result = self._engine.evaluate(self._snapshot, flag_key, merged, fallback)
        if self._telemetry is not None:
            duration_us = (time.perf_counter() - started) * 1_000_000
            snapshot = self._snapshot
            self._telemetry.emit(
                EvaluationEvent.from_result(
                    result,
                    merged,
                    duration_us=duration_us,
                    environment_id=snapshot.environment_id if snapshot else None,
                    project_id=self.options.project_id,
                )
            )
        return result

    async def _await_initial_fetch(self) -> None:
        if self._initial_fetch is not None and not self._initial_fetch.done():
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.shield(self._initial_fetch)

    async def evaluate(
        self, flag_key: str, fallback: Any = None, context: EvaluationContext | None = None
    ) -> EvaluationResult:
        """Evaluate a flag, waiting for an in-flight initial fetch first."""
        await self._await_initial_fetch()
        return self._evaluate(flag_key, fallback, context)

    async def get(self, flag_key: str, fallback: Any = None, context: EvaluationContext | None = None) -> Any:
        """Get a flag value, or ``fallback`` when it cannot be evaluated."""
        result = await self.evaluate(flag_key, fallback, context)
        return fallback if result.value is None else result.value

    async def is_enabled(self, flag_key: str, context: EvaluationContext | None = None) -> bool:
        """Whether a boolean flag evaluates to ``True``."""
        result = await self.evaluate(flag_key, False, context)
        return result.value is True
