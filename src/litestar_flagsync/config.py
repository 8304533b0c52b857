"""Configuration for the flag distribution server."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from litestar_flagsync.exceptions import ConfigurationError

if TYPE_CHECKING:
    from litestar_flagsync.sources import SourceRepository

__all__ = ["FlagSyncConfig"]


@dataclass
class FlagSyncConfig:
    """Configuration for :class:`~litestar_flagsync.plugin.FlagSyncPlugin`.

    Attributes:
        backend: Snapshot storage backend (``memory`` or ``redis``).
        redis_url: Redis connection URL, required for the ``redis`` backend.
        redis_prefix: Key prefix for Redis storage.
        source_repository: Where publishes load source records from; an
            empty :class:`~litestar_flagsync.sources.MemorySourceRepository`
            is created when omitted.
        subscriber_buffer_size: Snapshots queued per push subscriber before
            it is disconnected as too slow.
        telemetry_queue_size: Events queued per telemetry observer before the
            oldest are evicted.
        idle_room_timeout: Seconds of inactivity after which rooms hibernate
            or are evicted; ``None`` disables eviction.
        enable_routes: Register the HTTP routes.
        route_prefix: Path prefix of the HTTP routes.
        registry_dependency_key: Dependency key of the room registry.
        publisher_dependency_key: Dependency key of the snapshot publisher.
        telemetry_dependency_key: Dependency key of the telemetry hub.

    Example:
        >>> config = FlagSyncConfig(backend="redis", redis_url="redis://localhost:6379/0")

    """

    backend: Literal["memory", "redis"] = "memory"
    redis_url: str | None = None
    redis_prefix: str = "flagsync:"
    source_repository: SourceRepository | None = None
    subscriber_buffer_size: int = 16
    telemetry_queue_size: int = 1000
    idle_room_timeout: float | None = 300.0
    enable_routes: bool = True
    route_prefix: str = "/api/v1"
    registry_dependency_key: str = "flagsync_registry"
    publisher_dependency_key: str = "flagsync_publisher"
    telemetry_dependency_key: str = "flagsync_telemetry"

    def __post_init__(self) -> None:
        if self.backend == "redis" and not self.redis_url:
            raise ConfigurationError("redis_url is required when using redis backend")
        if self.subscriber_buffer_size < 1:
            raise ConfigurationError("subscriber_buffer_size must be at least 1")
        if self.telemetry_queue_size < 1:
            raise ConfigurationError("telemetry_queue_size must be at least 1")
        if self.idle_room_timeout is not None and self.idle_room_timeout <= 0:
            raise ConfigurationError("idle_room_timeout must be positive")
        if not self.route_prefix.startswith("/"):
            raise ConfigurationError("route_prefix must start with '/'")
