"""Publish workflow: load source records, build, store and broadcast."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from litestar_flagsync.exceptions import FlagSyncError

if TYPE_CHECKING:
    from litestar_flagsync.builder import SnapshotBuilder
    from litestar_flagsync.models.snapshot import Snapshot
    from litestar_flagsync.registry import RoomRegistry
    from litestar_flagsync.sources import SourceRepository

__all__ = ["PublishReport", "SnapshotPublisher"]

logger = logging.getLogger(__name__)


@dataclass
class PublishReport:
    """Outcome of publishing every environment of a project."""

    published: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, dict[str, int] | dict[str, str]]:
        return {"published": dict(self.published), "failed": dict(self.failed)}


class SnapshotPublisher:
    """Builds and distributes snapshots.

    Builds of one environment are serialised with a per-environment lock;
    different environments publish concurrently.

    Args:
        source: Repository the source records are loaded from.
        builder: Snapshot builder assigning versions.
        registry: Room registry the snapshots are published to.

    """

    def __init__(self, source: SourceRepository, builder: SnapshotBuilder, registry: RoomRegistry) -> None:
        self.source = source
        self.builder = builder
        self.registry = registry
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, environment_id: str) -> asyncio.Lock:
        return self._locks.setdefault(environment_id, asyncio.Lock())

    async def publish(self, environment_id: str) -> Snapshot:
        """Build and publish the snapshot of one environment.

        Raises:
            ConfigNotFoundError: If the environment does not exist.
            SnapshotBuildError: If the source records are invalid.

        """
        async with self._lock_for(environment_id):
            if self.builder.last_version(environment_id) is None:
                stored = await self.registry.storage.get_latest(environment_id)
                if stored is not None:
                    self.builder.seed_version(environment_id, stored.version)

            records = await self.source.load_environment(environment_id)
            snapshot = self.builder.build(environment_id, records)
            delivered = await self.registry.publish(snapshot)

        logger.info(
            "Published v%d of environment '%s' to %d subscribers", snapshot.version, environment_id, delivered
        )
        return snapshot

    async def publish_all(self, project_id: str) -> PublishReport:
        """Publish every environment of a project.

        A failing environment is reported and does not abort the others.
        """
        report = PublishReport()
        for environment in await self.source.list_environments(project_id):
            try:
                snapshot = await self.publish(environment.id)
            except FlagSyncError as exc:
                logger.warning("Publishing environment '%s' failed: %s", environment.id, exc)
                report.failed[environment.id] = str(exc)
            else:
                report.published[environment.id] = snapshot.version
        return report
