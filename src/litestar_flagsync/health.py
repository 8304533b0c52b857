"""Health reporting for the distribution server."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from litestar_flagsync.registry import RoomRegistry
    from litestar_flagsync.telemetry import TelemetryHub

__all__ = ["HealthCheckResult", "HealthStatus", "health_check"]

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthCheckResult:
    """Result of a health check.

    Attributes:
        status: Overall status.
        storage_connected: Whether snapshot storage answered.
        room_count: Rooms currently held in memory.
        subscriber_count: Connected push subscribers.
        observer_count: Connected telemetry observers.
        latency_ms: Time spent checking storage.
        timestamp: When the check ran.
        details: Extra diagnostic information.

    """

    status: HealthStatus
    storage_connected: bool
    room_count: int = 0
    subscriber_count: int = 0
    observer_count: int | None = None
    latency_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON friendly dict, omitting empty optional fields."""
        result: dict[str, Any] = {
            "status": self.status.value,
            "storage_connected": self.storage_connected,
            "room_count": self.room_count,
            "subscriber_count": self.subscriber_count,
            "latency_ms": round(self.latency_ms, 2),
            "timestamp": self.timestamp.isoformat(),
        }
        if self.observer_count is not None:
            result["observer_count"] = self.observer_count
        if self.details:
            result["details"] = self.details
        return result


async def health_check(registry: RoomRegistry, telemetry: TelemetryHub | None = None) -> HealthCheckResult:
    """Check storage connectivity and report room statistics.

    Storage failures make the server ``UNHEALTHY``; connected clients keep
    being served from room caches, but publishes and cold rooms fail.
    """
    start = time.perf_counter()
    details: dict[str, Any] = {}
    try:
        connected = await registry.storage.health_check()
    except Exception as exc:
        logger.warning("Storage health check raised", exc_info=True)
        connected = False
        details["storage_error"] = str(exc)
    latency_ms = (time.perf_counter() - start) * 1000

    rooms = registry.rooms
    hibernated = sum(1 for room in rooms.values() if room.is_hibernated)
    if hibernated:
        details["hibernated_rooms"] = hibernated

    return HealthCheckResult(
        status=HealthStatus.HEALTHY if connected else HealthStatus.UNHEALTHY,
        storage_connected=connected,
        room_count=len(rooms),
        subscriber_count=sum(room.subscriber_count for room in rooms.values()),
        observer_count=telemetry.observer_count() if telemetry is not None else None,
        latency_ms=latency_ms,
        details=details,
    )
