"""Redis snapshot storage.

Keys, under a configurable prefix:

- ``{prefix}snapshot:{environment_id}``: the encoded snapshot document
- ``{prefix}version:{environment_id}``: the stored version
- ``{prefix}env-key:{environment_key}``: environment id for a public key

Writes use optimistic locking (``WATCH``/``MULTI``) on the version key so a
stale writer can never overwrite a newer snapshot.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from litestar_flagsync.serialization import decode_snapshot, encode_snapshot

if TYPE_CHECKING:
    from litestar_flagsync.models.snapshot import Snapshot

__all__ = ["RedisSnapshotStorage"]

logger = logging.getLogger(__name__)


class RedisSnapshotStorage:
    """Snapshot storage backed by Redis.

    Args:
        redis: A ``redis.asyncio.Redis`` client.
        prefix: Key prefix.

    Example:
        >>> storage = await RedisSnapshotStorage.create("redis://localhost:6379/0")  # doctest: +SKIP

    """

    def __init__(self, redis: Redis, prefix: str = "flagsync:") -> None:
        self._redis = redis
        self._prefix = prefix
        self._owns_client = False

    @classmethod
    async def create(cls, url: str, prefix: str = "flagsync:") -> RedisSnapshotStorage:
        """Create a storage with its own connection pool."""
        client = Redis.from_url(url, decode_responses=True)
        storage = cls(redis=client, prefix=prefix)
        storage._owns_client = True
        return storage

    def _snapshot_key(self, environment_id: str) -> str:
        return f"{self._prefix}snapshot:{environment_id}"

    def _version_key(self, environment_id: str) -> str:
        return f"{self._prefix}version:{environment_id}"

    def _environment_key(self, environment_key: str) -> str:
        return f"{self._prefix}env-key:{environment_key}"

    async def get_latest(self, environment_id: str) -> Snapshot | None:
        payload = await self._redis.get(self._snapshot_key(environment_id))
        if payload is None:
            return None
        return decode_snapshot(payload)

    async def get_latest_by_key(self, environment_key: str) -> Snapshot | None:
        environment_id = await self._redis.get(self._environment_key(environment_key))
        if environment_id is None:
            return None
        if isinstance(environment_id, bytes):
            environment_id = environment_id.decode()
        return await self.get_latest(environment_id)

    async def save(self, snapshot: Snapshot) -> bool:
        version_key = self._version_key(snapshot.environment_id)
        payload = encode_snapshot(snapshot).decode()

        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(version_key)
                    current = await pipe.get(version_key)
                    if current is not None and int(current) >= snapshot.version:
                        await pipe.unwatch()
                        return False

                    pipe.multi()
                    pipe.set(self._snapshot_key(snapshot.environment_id), payload)
                    pipe.set(version_key, snapshot.version)
                    if snapshot.environment_key:
                        pipe.set(self._environment_key(snapshot.environment_key), snapshot.environment_id)
                    await pipe.execute()
                    return True
                except WatchError:
                    logger.debug("Concurrent write on '%s', retrying", version_key)
                    continue

    async def health_check(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError:
            logger.warning("Redis health check failed", exc_info=True)
            return False

    async def close(self) -> None:
        if self._owns_client:
            await self._redis.aclose()
