"""Snapshot storage backends."""

from __future__ import annotations

from litestar_flagsync.storage.base import SnapshotStorage
from litestar_flagsync.storage.memory import MemorySnapshotStorage

__all__ = ["MemorySnapshotStorage", "SnapshotStorage"]

try:
    from litestar_flagsync.storage.redis import RedisSnapshotStorage  # noqa: F401

    __all__ += ["RedisSnapshotStorage"]
except ImportError:
    pass
