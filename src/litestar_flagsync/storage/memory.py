"""In-memory snapshot storage."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from litestar_flagsync.models.snapshot import Snapshot

__all__ = ["MemorySnapshotStorage"]


class MemorySnapshotStorage:
    """Process-local snapshot storage.

    Suitable for tests and single-process deployments. Snapshots are
    immutable, so they are stored by reference.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, Snapshot] = {}
        self._environment_keys: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get_latest(self, environment_id: str) -> Snapshot | None:
        return self._snapshots.get(environment_id)

    async def get_latest_by_key(self, environment_key: str) -> Snapshot | None:
        environment_id = self._environment_keys.get(environment_key)
        if environment_id is None:
            return None
        return self._snapshots.get(environment_id)

    async def save(self, snapshot: Snapshot) -> bool:
        async with self._lock:
            current = self._snapshots.get(snapshot.environment_id)
            if not snapshot.supersedes(current):
                return False
            self._snapshots[snapshot.environment_id] = snapshot
            if snapshot.environment_key:
                self._environment_keys[snapshot.environment_key] = snapshot.environment_id
            return True

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        self._snapshots.clear()
        self._environment_keys.clear()
