"""Batched, fire-and-forget telemetry upload."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from litestar_flagsync.telemetry import EvaluationEvent

__all__ = ["TelemetryBuffer"]

logger = logging.getLogger(__name__)


class TelemetryBuffer:
    """Collects evaluation events and uploads them in batches.

    ``emit`` only appends to a bounded buffer, so it never blocks
    evaluation. Uploads happen every ``flush_interval`` seconds and as soon as
    a full batch is buffered; failed uploads are dropped.

    Args:
        sender: Coroutine function uploading ``(project_id, events)``.
        project_id: Project the events belong to.
        flush_interval: Seconds between periodic uploads.
        max_batch_size: Events per upload.
        max_buffer_size: Buffered events; the oldest are discarded beyond it.

    """

    def __init__(
        self,
        sender: Callable[[str, list[dict[str, Any]]], Awaitable[None]],
        project_id: str,
        flush_interval: float = 5.0,
        max_batch_size: int = 100,
        max_buffer_size: int = 10_000,
    ) -> None:
        self._sender = sender
        self.project_id = project_id
        self._flush_interval = flush_interval
        self._max_batch_size = max_batch_size
        self._events: deque[EvaluationEvent] = deque(maxlen=max_buffer_size)
        self._timer: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._events)

    def start(self) -> None:
        if self._timer is None:
            self._timer = asyncio.create_task(self._run())

    def emit(self, event: EvaluationEvent) -> None:
        self._events.append(event)
        if len(self._events) < self._max_batch_size:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.flush())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Upload one batch of buffered events."""
        if not self._events:
            return
        batch = [self._events.popleft() for _ in range(min(self._max_batch_size, len(self._events)))]
        try:
            await self._sender(self.project_id, [event.to_dict() for event in batch])
        except Exception as exc:
            self.dropped += len(batch)
            logger.debug("Dropped %d telemetry events: %s", len(batch), exc)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._flush_interval)
            await self.flush()

    async def close(self) -> None:
        """Stop the timer and upload what is left."""
        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        while self._events:
            await self.flush()
