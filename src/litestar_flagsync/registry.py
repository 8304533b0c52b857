"""Registry of distribution rooms."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from litestar_flagsync.exceptions import ConfigNotFoundError
from litestar_flagsync.room import DistributionRoom

if TYPE_CHECKING:
    from litestar_flagsync.models.snapshot import Snapshot
    from litestar_flagsync.storage.base import SnapshotStorage

__all__ = ["RoomRegistry"]

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Addresses distribution rooms by environment id.

    Rooms are created lazily and recover their state from storage, so an
    evicted room is indistinguishable from a fresh one to its clients.

    Args:
        storage: Durable snapshot storage shared by all rooms.
        buffer_size: Per-subscriber queue size of new rooms.

    """

    def __init__(self, storage: SnapshotStorage, buffer_size: int = 16) -> None:
        self.storage = storage
        self._buffer_size = buffer_size
        self._rooms: dict[str, DistributionRoom] = {}
        self._environment_keys: dict[str, str] = {}
        self._lock = asyncio.Lock()

    @property
    def rooms(self) -> dict[str, DistributionRoom]:
        return dict(self._rooms)

    def get(self, environment_id: str) -> DistributionRoom:
        """Return the room of an environment, creating it if needed."""
        room = self._rooms.get(environment_id)
        if room is None:
            room = DistributionRoom(environment_id, self.storage, self._buffer_size)
            self._rooms[environment_id] = room
            logger.debug("Created room '%s'", environment_id)
        return room

    async def get_by_key(self, environment_key: str) -> DistributionRoom:
        """Resolve a public environment key to its room.

        Raises:
            ConfigNotFoundError: If no snapshot was ever published for the key.

        """
        environment_id = self._environment_keys.get(environment_key)
        if environment_id is None:
            async with self._lock:
                snapshot = await self.storage.get_latest_by_key(environment_key)
                if snapshot is None:
                    raise ConfigNotFoundError("environment", environment_key)
                environment_id = snapshot.environment_id
                self._environment_keys[environment_key] = environment_id
        return self.get(environment_id)

    async def publish(self, snapshot: Snapshot) -> int:
        """Publish a snapshot to its environment's room."""
        if snapshot.environment_key:
            self._environment_keys[snapshot.environment_key] = snapshot.environment_id
        return await self.get(snapshot.environment_id).publish(snapshot)

    async def evict_idle(self, idle_timeout: float) -> list[str]:
        """Hibernate idle rooms and drop idle rooms without subscribers.

        Args:
            idle_timeout: Seconds without activity before a room is idle.

        Returns:
            Ids of the rooms removed from the registry.

        """
        now = time.monotonic()
        evicted: list[str] = []
        for environment_id, room in list(self._rooms.items()):
            if now - room.last_activity < idle_timeout:
                continue
            if room.subscriber_count:
                room.hibernate()
                continue
            await room.close()
            del self._rooms[environment_id]
            evicted.append(environment_id)
        if evicted:
            logger.info("Evicted %d idle rooms", len(evicted))
        return evicted

    async def close(self) -> None:
        for room in self._rooms.values():
            await room.close()
        self._rooms.clear()
        self._environment_keys.clear()
