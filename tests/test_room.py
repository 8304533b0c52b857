"""Tests for distribution rooms and subscribers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from litestar_flagsync import DistributionRoom, MemorySnapshotStorage, Snapshot, Subscriber


class TestSubscriber:
    """Tests for Subscriber."""

    async def test_offer_and_get(self, snapshot: Snapshot) -> None:
        subscriber = Subscriber(buffer_size=2)

        assert subscriber.offer(snapshot)
        assert await subscriber.get() is snapshot

    async def test_full_buffer_rejects(self, snapshot_factory: Callable[..., Snapshot]) -> None:
        """Test that offers never block once the buffer is full."""
        subscriber = Subscriber(buffer_size=2)

        assert subscriber.offer(snapshot_factory(version=1))
        assert subscriber.offer(snapshot_factory(version=2))
        assert not subscriber.offer(snapshot_factory(version=3))

    async def test_close_ends_iteration(self, snapshot: Snapshot) -> None:
        """Test that closing drops pending snapshots and stops iteration."""
        subscriber = Subscriber(buffer_size=1)
        subscriber.offer(snapshot)

        subscriber.close()

        assert [item async for item in subscriber] == []
        assert await subscriber.get() is None
        assert not subscriber.offer(snapshot)

    async def test_close_wakes_waiting_reader(self) -> None:
        subscriber = Subscriber()
        reader = asyncio.create_task(subscriber.get())
        await asyncio.sleep(0)

        subscriber.close()

        assert await asyncio.wait_for(reader, 1) is None

    async def test_close_is_idempotent(self) -> None:
        subscriber = Subscriber(buffer_size=1)

        subscriber.close()
        subscriber.close()

        assert subscriber.closed


class TestDistributionRoom:
    """Tests for DistributionRoom."""

    @pytest.fixture
    def room(self, storage: MemorySnapshotStorage) -> DistributionRoom:
        return DistributionRoom("env-1", storage, buffer_size=2)

    async def test_cold_room(self, room: DistributionRoom) -> None:
        assert room.snapshot is None
        assert room.is_hibernated
        assert await room.load() is None

    async def test_publish_stores_and_caches(
        self, room: DistributionRoom, storage: MemorySnapshotStorage, snapshot: Snapshot
    ) -> None:
        delivered = await room.publish(snapshot)

        assert delivered == 0
        assert room.snapshot is snapshot
        assert await storage.get_latest("env-1") is snapshot

    async def test_subscriber_receives_cached_snapshot(self, room: DistributionRoom, snapshot: Snapshot) -> None:
        """Test that a new subscriber gets the current snapshot immediately."""
        await room.publish(snapshot)

        subscriber = await room.subscribe()

        assert room.subscriber_count == 1
        assert await subscriber.get() is snapshot

    async def test_subscribe_loads_from_storage(
        self, room: DistributionRoom, storage: MemorySnapshotStorage, snapshot: Snapshot
    ) -> None:
        """Test that a cold room recovers its snapshot from storage."""
        await storage.save(snapshot)

        subscriber = await room.subscribe()

        assert await subscriber.get() is snapshot

    async def test_broadcast(self, room: DistributionRoom, snapshot_factory: Callable[..., Snapshot]) -> None:
        first, second = await room.subscribe(), await room.subscribe()

        delivered = await room.publish(snapshot_factory(version=3))

        assert delivered == 2
        assert (await first.get()).version == 3  # type: ignore[union-attr]
        assert (await second.get()).version == 3  # type: ignore[union-attr]

    async def test_stale_publish_is_ignored(
        self, room: DistributionRoom, snapshot_factory: Callable[..., Snapshot]
    ) -> None:
        """Test that publishing an older version changes nothing."""
        await room.publish(snapshot_factory(version=5))
        subscriber = await room.subscribe()
        await subscriber.get()

        assert await room.publish(snapshot_factory(version=4)) == 0
        assert room.snapshot.version == 5  # type: ignore[union-attr]

    async def test_wrong_environment(self, room: DistributionRoom, snapshot_factory: Callable[..., Snapshot]) -> None:
        with pytest.raises(ValueError, match="env-2"):
            await room.publish(snapshot_factory(environment_id="env-2"))

    async def test_slow_subscriber_does_not_block_others(
        self, room: DistributionRoom, snapshot_factory: Callable[..., Snapshot]
    ) -> None:
        """Test that a subscriber that stops reading is dropped while others keep receiving."""
        slow = await room.subscribe()
        fast = await room.subscribe()

        received: list[int] = []
        for version in range(1, 6):
            await room.publish(snapshot_factory(version=version))
            snapshot = await asyncio.wait_for(fast.get(), 1)
            received.append(snapshot.version)  # type: ignore[union-attr]

        assert received == [1, 2, 3, 4, 5]
        assert slow.closed
        assert room.subscriber_count == 1

    async def test_save_conflict_adopts_newer_stored_snapshot(
        self, room: DistributionRoom, storage: MemorySnapshotStorage, snapshot_factory: Callable[..., Snapshot]
    ) -> None:
        """Test that a room behind storage catches up instead of publishing an older version."""
        await room.publish(snapshot_factory(version=1))
        await storage.save(snapshot_factory(version=10))
        subscriber = await room.subscribe()
        await subscriber.get()

        delivered = await room.publish(snapshot_factory(version=5))

        assert delivered == 1
        assert room.snapshot.version == 10  # type: ignore[union-attr]
        assert (await subscriber.get()).version == 10  # type: ignore[union-attr]

    async def test_hibernate_and_recover(self, room: DistributionRoom, snapshot: Snapshot) -> None:
        """Test that a hibernated room reloads its snapshot on the next request."""
        await room.publish(snapshot)
        subscriber = await room.subscribe()

        room.hibernate()

        assert room.is_hibernated
        assert room.subscriber_count == 1
        assert await room.load() is snapshot
        assert not subscriber.closed

    async def test_unsubscribe(self, room: DistributionRoom) -> None:
        subscriber = await room.subscribe()

        room.unsubscribe(subscriber)

        assert room.subscriber_count == 0
        assert subscriber.closed

    async def test_close(self, room: DistributionRoom, snapshot: Snapshot) -> None:
        await room.publish(snapshot)
        subscriber = await room.subscribe()

        await room.close()

        assert subscriber.closed
        assert room.subscriber_count == 0
        assert room.snapshot is None
