"""Per-environment distribution room.

A room owns the latest snapshot of one environment and the set of push
subscribers connected to it. It is the single writer for its environment's
cache: publishes are serialised by an :class:`asyncio.Lock` and broadcast
verbatim to every subscriber.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING
from uuid import uuid4

if TYPE_CHECKING:
    from litestar_flagsync.models.snapshot import Snapshot
    from litestar_flagsync.storage.base import SnapshotStorage

__all__ = ["DistributionRoom", "Subscriber"]

logger = logging.getLogger(__name__)


class Subscriber:
    """A push connection's outbound queue.

    Sends never block the room: the queue is bounded and a subscriber that
    falls behind is closed so its client reconnects and resynchronises.

    Iterating a subscriber yields snapshots until it is closed.
    """

    def __init__(self, buffer_size: int = 16) -> None:
        self.id = uuid4().hex
        self._queue: asyncio.Queue[Snapshot | None] = asyncio.Queue(maxsize=buffer_size + 1)
        self._buffer_size = buffer_size
        self.closed = False

    def offer(self, snapshot: Snapshot) -> bool:
        """Queue a snapshot without waiting; ``False`` if the buffer is full."""
        if self.closed or self._queue.qsize() >= self._buffer_size:
            return False
        self._queue.put_nowait(snapshot)
        return True

    async def get(self) -> Snapshot | None:
        """Wait for the next snapshot; ``None`` once the subscriber is closed."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        # One slot is always kept free for the sentinel.
        self._queue.put_nowait(None)

    def __aiter__(self) -> Subscriber:
        return self

    async def __anext__(self) -> Snapshot:
        snapshot = await self.get()
        if snapshot is None:
            raise StopAsyncIteration
        return snapshot


class DistributionRoom:
    """Caches and broadcasts the latest snapshot of one environment.

    Args:
        environment_id: The environment served by this room.
        storage: Durable snapshot storage.
        buffer_size: Per-subscriber queue size.

    """

    def __init__(self, environment_id: str, storage: SnapshotStorage, buffer_size: int = 16) -> None:
        self.environment_id = environment_id
        self._storage = storage
        self._buffer_size = buffer_size
        self._snapshot: Snapshot | None = None
        self._subscribers: dict[str, Subscriber] = {}
        self._lock = asyncio.Lock()
        self.last_activity = time.monotonic()

    @property
    def snapshot(self) -> Snapshot | None:
        """The cached snapshot; ``None`` while cold or hibernated."""
        return self._snapshot

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def is_hibernated(self) -> bool:
        return self._snapshot is None

    def _touch(self) -> None:
        self.last_activity = time.monotonic()

    async def _load_locked(self) -> Snapshot | None:
        if self._snapshot is None:
            self._snapshot = await self._storage.get_latest(self.environment_id)
            if self._snapshot is not None:
                logger.debug("Room '%s' loaded v%d from storage", self.environment_id, self._snapshot.version)
        return self._snapshot

    async def load(self) -> Snapshot | None:
        """Return the latest snapshot, loading it from storage if needed."""
        async with self._lock:
            self._touch()
            return await self._load_locked()

    async def subscribe(self) -> Subscriber:
        """Register a subscriber; it immediately receives the cached snapshot."""
        async with self._lock:
            self._touch()
            snapshot = await self._load_locked()
            subscriber = Subscriber(self._buffer_size)
            self._subscribers[subscriber.id] = subscriber
            if snapshot is not None:
                subscriber.offer(snapshot)
        logger.debug("Subscriber %s joined room '%s'", subscriber.id, self.environment_id)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.pop(subscriber.id, None)
        subscriber.close()
        self._touch()

    async def publish(self, snapshot: Snapshot) -> int:
        """Store and broadcast a snapshot.

        Versions not newer than the cached one are ignored.

        Args:
            snapshot: The snapshot to publish.

        Returns:
            The number of subscribers the snapshot was delivered to.

        Raises:
            ValueError: If the snapshot belongs to another environment.

        """
        if snapshot.environment_id != self.environment_id:
            raise ValueError(
                f"snapshot of environment '{snapshot.environment_id}' published to room '{self.environment_id}'"
            )

        async with self._lock:
            self._touch()
            current = await self._load_locked()
            if not snapshot.supersedes(current):
                logger.debug(
                    "Room '%s' ignored v%d, already at v%d", self.environment_id, snapshot.version, current.version
                )
                return 0

            if not await self._storage.save(snapshot):
                stored = await self._storage.get_latest(self.environment_id)
                if stored is not None and stored.version > snapshot.version:
                    snapshot = stored
                if not snapshot.supersedes(current):
                    return 0

            self._snapshot = snapshot
            return self._broadcast(snapshot)

    def _broadcast(self, snapshot: Snapshot) -> int:
        delivered = 0
        for subscriber in list(self._subscribers.values()):
            if subscriber.offer(snapshot):
                delivered += 1
                continue
            logger.warning(
                "Subscriber %s of room '%s' is too slow, disconnecting", subscriber.id, self.environment_id
            )
            self.unsubscribe(subscriber)
        logger.info(
            "Room '%s' broadcast v%d to %d subscribers", self.environment_id, snapshot.version, delivered
        )
        return delivered

    def hibernate(self) -> None:
        """Drop the in-memory cache; subscribers stay connected."""
        self._snapshot = None

    async def close(self) -> None:
        """Disconnect every subscriber."""
        async with self._lock:
            for subscriber in list(self._subscribers.values()):
                subscriber.close()
            self._subscribers.clear()
            self._snapshot = None
