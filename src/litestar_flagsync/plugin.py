"""Litestar plugin wiring the distribution server into an application."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from litestar_flagsync.builder import SnapshotBuilder
from litestar_flagsync.config import FlagSyncConfig
from litestar_flagsync.controllers import FlagSyncController
from litestar_flagsync.publisher import SnapshotPublisher
from litestar_flagsync.registry import RoomRegistry
from litestar_flagsync.sources import MemorySourceRepository
from litestar_flagsync.storage.memory import MemorySnapshotStorage
from litestar_flagsync.telemetry import TelemetryHub

if TYPE_CHECKING:
    from litestar import Litestar
    from litestar.config.app import AppConfig

    from litestar_flagsync.storage.base import SnapshotStorage

__all__ = ["FlagSyncPlugin"]

logger = logging.getLogger(__name__)


class FlagSyncPlugin(InitPluginProtocol):
    """Serve feature flag snapshots from a Litestar application.

    On startup the plugin creates the snapshot storage, the room registry,
    the publisher and the telemetry hub, stores them in ``app.state`` and
    exposes them as dependencies under the configured keys.

    Example:
        >>> from litestar import Litestar
        >>> app = Litestar(plugins=[FlagSyncPlugin(FlagSyncConfig())])

    """

    def __init__(self, config: FlagSyncConfig | None = None) -> None:
        self.config = config or FlagSyncConfig()
        self.storage: SnapshotStorage | None = None
        self.registry: RoomRegistry | None = None
        self.publisher: SnapshotPublisher | None = None
        self.telemetry: TelemetryHub | None = None
        self._eviction_task: asyncio.Task[None] | None = None

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        app_config.on_startup.insert(0, self._on_startup)
        app_config.on_shutdown.append(self._on_shutdown)

        app_config.dependencies[self.config.registry_dependency_key] = Provide(
            self._provide_registry, sync_to_thread=False
        )
        app_config.dependencies[self.config.publisher_dependency_key] = Provide(
            self._provide_publisher, sync_to_thread=False
        )
        app_config.dependencies[self.config.telemetry_dependency_key] = Provide(
            self._provide_telemetry, sync_to_thread=False
        )

        if self.config.enable_routes:
            controller = type(
                "FlagSyncController",
                (FlagSyncController,),
                {
                    "path": self.config.route_prefix,
                    "dependencies": {
                        "registry": Provide(self._provide_registry, sync_to_thread=False),
                        "publisher": Provide(self._provide_publisher, sync_to_thread=False),
                        "telemetry": Provide(self._provide_telemetry, sync_to_thread=False),
                    },
                },
            )
            app_config.route_handlers.append(controller)

        return app_config

    async def _create_storage(self) -> SnapshotStorage:
        if self.config.backend == "memory":
            return MemorySnapshotStorage()

        if self.config.backend == "redis":
            from litestar_flagsync.storage.redis import RedisSnapshotStorage

            if self.config.redis_url is None:
                raise ValueError("redis_url is required when using redis backend")
            return await RedisSnapshotStorage.create(url=self.config.redis_url, prefix=self.config.redis_prefix)

        raise ValueError(f"Unknown backend: {self.config.backend}")

    async def _on_startup(self, app: Litestar) -> None:
        self.storage = await self._create_storage()
        self.registry = RoomRegistry(self.storage, buffer_size=self.config.subscriber_buffer_size)
        source = self.config.source_repository or MemorySourceRepository()
        self.publisher = SnapshotPublisher(source, SnapshotBuilder(), self.registry)
        self.telemetry = TelemetryHub(max_queue=self.config.telemetry_queue_size)

        app.state.flagsync_storage = self.storage
        app.state.flagsync_registry = self.registry
        app.state.flagsync_publisher = self.publisher
        app.state.flagsync_telemetry = self.telemetry

        if self.config.idle_room_timeout is not None:
            self._eviction_task = asyncio.create_task(self._evict_idle_rooms(self.config.idle_room_timeout))
        logger.info("Flag sync server started with %s storage", self.config.backend)

    async def _on_shutdown(self, app: Litestar) -> None:
        if self._eviction_task is not None:
            self._eviction_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._eviction_task
            self._eviction_task = None

        if self.telemetry is not None:
            self.telemetry.close()
        if self.registry is not None:
            await self.registry.close()
        if self.storage is not None:
            await self.storage.close()

        self.storage = None
        self.registry = None
        self.publisher = None
        self.telemetry = None
        logger.info("Flag sync server stopped")

    async def _evict_idle_rooms(self, idle_timeout: float) -> None:
        while True:
            await asyncio.sleep(idle_timeout / 2)
            if self.registry is not None:
                await self.registry.evict_idle(idle_timeout)

    def _provide_registry(self) -> RoomRegistry:
        if self.registry is None:
            raise RuntimeError("FlagSyncPlugin has not been started")
        return self.registry

    def _provide_publisher(self) -> SnapshotPublisher:
        if self.publisher is None:
            raise RuntimeError("FlagSyncPlugin has not been started")
        return self.publisher

    def _provide_telemetry(self) -> TelemetryHub:
        if self.telemetry is None:
            raise RuntimeError("FlagSyncPlugin has not been started")
        return self.telemetry
