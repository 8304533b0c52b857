"""Evaluation telemetry fan-out.

Clients upload batches of :class:`EvaluationEvent`; the server fans them out
to live observers of the project (dashboards, debuggers). Observers have
bounded queues that evict their oldest event when full, so a stalled
observer never slows down ingestion or other observers.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import uuid4

from litestar_flagsync.models.base import format_datetime, parse_datetime

if TYPE_CHECKING:
    from collections.abc import Iterable

    from litestar_flagsync.context import EvaluationContext
    from litestar_flagsync.results import EvaluationResult

__all__ = [
    "EvaluationEvent",
    "TelemetryEmitter",
    "TelemetryHub",
    "TelemetryObserver",
]

logger = logging.getLogger(__name__)


@dataclass
class EvaluationEvent:
    """One flag evaluation as reported by a client.

    Only attribute *names* of the context are reported, never their values.

    Attributes:
        flag_key: The evaluated flag.
        reason: Evaluation reason.
        value: Served value.
        variation_id: Served variation.
        matched_rule_id: Matching rule for RULE_MATCH.
        error_code: Error code for FALLBACK/ERROR.
        error_detail: Error detail for FALLBACK/ERROR.
        snapshot_version: Snapshot version used.
        duration_us: Evaluation time in microseconds.
        is_anonymous: Whether the context had no targeting key.
        context_attributes: Names of the attributes present in the context.
        environment_id: Environment the client is bound to.
        project_id: Owning project.
        timestamp: Evaluation time.

    """

    flag_key: str
    reason: str
    value: Any = None
    variation_id: str | None = None
    matched_rule_id: str | None = None
    error_code: str | None = None
    error_detail: str | None = None
    snapshot_version: int | None = None
    duration_us: float | None = None
    is_anonymous: bool = True
    context_attributes: list[str] = field(default_factory=list)
    environment_id: str | None = None
    project_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_result(
        cls,
        result: EvaluationResult,
        context: EvaluationContext,
        *,
        duration_us: float | None = None,
        environment_id: str | None = None,
        project_id: str | None = None,
    ) -> EvaluationEvent:
        return cls(
            flag_key=result.flag_key,
            reason=result.reason.value,
            value=result.value,
            variation_id=result.variation_id,
            matched_rule_id=result.matched_rule_id,
            error_code=result.error_code.value if result.error_code else None,
            error_detail=result.error_detail,
            snapshot_version=result.snapshot_version,
            duration_us=duration_us,
            is_anonymous=context.is_anonymous,
            context_attributes=sorted(context.attributes),
            environment_id=environment_id,
            project_id=project_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "flag_key": self.flag_key,
            "reason": self.reason,
            "value": self.value,
            "variation_id": self.variation_id,
            "matched_rule_id": self.matched_rule_id,
            "error_code": self.error_code,
            "error_detail": self.error_detail,
            "snapshot_version": self.snapshot_version,
            "duration_us": self.duration_us,
            "is_anonymous": self.is_anonymous,
            "context_attributes": list(self.context_attributes),
            "environment_id": self.environment_id,
            "project_id": self.project_id,
            "timestamp": format_datetime(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvaluationEvent:
        return cls(
            flag_key=data["flag_key"],
            reason=data["reason"],
            value=data.get("value"),
            variation_id=data.get("variation_id"),
            matched_rule_id=data.get("matched_rule_id"),
            error_code=data.get("error_code"),
            error_detail=data.get("error_detail"),
            snapshot_version=data.get("snapshot_version"),
            duration_us=data.get("duration_us"),
            is_anonymous=bool(data.get("is_anonymous", True)),
            context_attributes=list(data.get("context_attributes") or ()),
            environment_id=data.get("environment_id"),
            project_id=data.get("project_id"),
            timestamp=parse_datetime(data.get("timestamp")) or datetime.now(UTC),
        )


@runtime_checkable
class TelemetryEmitter(Protocol):
    """Anything that accepts evaluation events without blocking."""

    def emit(self, event: EvaluationEvent) -> None: ...


class TelemetryObserver:
    """A live consumer of one project's evaluation events.

    Args:
        project_id: The observed project.
        max_queue: Queue bound; the oldest event is evicted when full.

    """

    def __init__(self, project_id: str, max_queue: int = 1000) -> None:
        self.id = uuid4().hex
        self.project_id = project_id
        self.dropped = 0
        self.closed = False
        self._events: deque[EvaluationEvent] = deque(maxlen=max_queue)
        self._wakeup = asyncio.Event()
        try:
            self._loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    def __len__(self) -> int:
        return len(self._events)

    def push(self, event: EvaluationEvent) -> None:
        if self.closed:
            return
        if len(self._events) == self._events.maxlen:
            self.dropped += 1
        self._events.append(event)
        self._notify()

    def _notify(self) -> None:
        if self._loop is None:
            self._wakeup.set()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._wakeup.set()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._wakeup.set)

    async def get(self) -> EvaluationEvent | None:
        """Wait for the next event; ``None`` once closed and drained."""
        while not self._events:
            if self.closed:
                return None
            self._wakeup.clear()
            await self._wakeup.wait()
        return self._events.popleft()

    def drain(self) -> list[EvaluationEvent]:
        events = list(self._events)
        self._events.clear()
        return events

    def close(self) -> None:
        self.closed = True
        self._notify()

    def __aiter__(self) -> TelemetryObserver:
        return self

    async def __anext__(self) -> EvaluationEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class TelemetryHub:
    """Fans evaluation events out to project-scoped observers.

    Args:
        max_queue: Default per-observer queue bound.

    """

    def __init__(self, max_queue: int = 1000) -> None:
        self._max_queue = max_queue
        self._observers: dict[str, dict[str, TelemetryObserver]] = {}

    def subscribe(self, project_id: str, max_queue: int | None = None) -> TelemetryObserver:
        observer = TelemetryObserver(project_id, max_queue or self._max_queue)
        self._observers.setdefault(project_id, {})[observer.id] = observer
        logger.debug("Telemetry observer %s joined project '%s'", observer.id, project_id)
        return observer

    def unsubscribe(self, observer: TelemetryObserver) -> None:
        observers = self._observers.get(observer.project_id)
        if observers is not None:
            observers.pop(observer.id, None)
            if not observers:
                del self._observers[observer.project_id]
        observer.close()

    def observer_count(self, project_id: str | None = None) -> int:
        if project_id is not None:
            return len(self._observers.get(project_id, {}))
        return sum(len(observers) for observers in self._observers.values())

    def emit(self, event: EvaluationEvent) -> None:
        """Deliver one event to the observers of its project; never blocks."""
        if event.project_id is None:
            logger.debug("Dropping telemetry event for '%s' without project", event.flag_key)
            return
        for observer in list(self._observers.get(event.project_id, {}).values()):
            observer.push(event)

    def emit_batch(self, project_id: str, events: Iterable[EvaluationEvent]) -> int:
        """Deliver a batch of events, scoping each to ``project_id``."""
        count = 0
        for event in events:
            event.project_id = project_id
            self.emit(event)
            count += 1
        return count

    def close(self) -> None:
        for observers in list(self._observers.values()):
            for observer in list(observers.values()):
                observer.close()
        self._observers.clear()
