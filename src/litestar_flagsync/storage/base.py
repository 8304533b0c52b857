"""Snapshot storage protocol."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from litestar_flagsync.models.snapshot import Snapshot

__all__ = ["SnapshotStorage"]


@runtime_checkable
class SnapshotStorage(Protocol):
    """Durable storage of the latest snapshot per environment.

    Implementations keep exactly one snapshot per environment and only ever
    replace it with a strictly newer version, so concurrent writers cannot
    move an environment backwards.
    """

    async def get_latest(self, environment_id: str) -> Snapshot | None:
        """Return the latest snapshot of an environment, if any."""
        ...

    async def get_latest_by_key(self, environment_key: str) -> Snapshot | None:
        """Return the latest snapshot of the environment with the given public key."""
        ...

    async def save(self, snapshot: Snapshot) -> bool:
        """Store a snapshot if it is newer than the stored one.

        Returns:
            ``True`` if the snapshot was stored, ``False`` if an equal or newer
            version was already present.

        """
        ...

    async def health_check(self) -> bool:
        """Check whether the storage is reachable."""
        ...

    async def close(self) -> None:
        """Release any held resources."""
        ...
