"""Snapshot builder.

Turns the source records of one environment into an immutable
:class:`~litestar_flagsync.models.Snapshot`.
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from litestar_flagsync.exceptions import SnapshotBuildError
from litestar_flagsync.hashing import BUCKET_SCALE
from litestar_flagsync.models import (
    Condition,
    Rollout,
    RolloutVariation,
    ScheduleStep,
    Segment,
    Snapshot,
    SnapshotFlag,
    TargetingRules,
    TargetRule,
    Variation,
)
from litestar_flagsync.types import RuleOperator, TargetType

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from litestar_flagsync.sources import (
        FlagEnvironmentRecord,
        FlagRecord,
        RolloutRecord,
        RolloutWeightRecord,
        SegmentRecord,
        SourceRecords,
        TargetRecord,
    )

__all__ = ["SnapshotBuilder"]

logger = logging.getLogger(__name__)


class SnapshotBuilder:
    """Builds snapshots and assigns monotonic versions.

    Versions are ``max(previous + 1, now in milliseconds)`` per environment,
    so they track wall-clock time but never go backwards when the clock does.
    Building different environments concurrently is safe; callers serialise
    builds of the same environment (see
    :class:`~litestar_flagsync.publisher.SnapshotPublisher`).

    Args:
        clock: Returns the current time.

    Example:
        >>> builder = SnapshotBuilder()
        >>> snapshot = builder.build("env-1", records)  # doctest: +SKIP

    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._last_versions: dict[str, int] = {}
        self._lock = threading.Lock()

    def seed_version(self, environment_id: str, version: int) -> None:
        """Record a version known from durable storage."""
        with self._lock:
            if version > self._last_versions.get(environment_id, 0):
                self._last_versions[environment_id] = version

    def last_version(self, environment_id: str) -> int | None:
        return self._last_versions.get(environment_id)

    def next_version(self, environment_id: str) -> int:
        now_ms = int(self._clock().timestamp() * 1000)
        with self._lock:
            version = max(self._last_versions.get(environment_id, 0) + 1, now_ms)
            self._last_versions[environment_id] = version
        return version

    def build(self, environment_id: str, records: SourceRecords) -> Snapshot:
        """Build the snapshot of one environment.

        Args:
            environment_id: The environment to build.
            records: Source records loaded for that environment.

        Returns:
            A new snapshot with a fresh version.

        Raises:
            SnapshotBuildError: If the records are inconsistent.

        """
        environment = records.environment
        if environment.id != environment_id:
            raise SnapshotBuildError(f"records belong to environment '{environment.id}', not '{environment_id}'")

        segments = {
            record.key: self._build_segment(record) for record in records.segments if not record.deleted
        }

        flags: dict[str, SnapshotFlag] = {}
        for flag in records.flags:
            if flag.archived:
                continue
            flags[flag.key] = self._build_flag(flag, records.flag_environments.get(flag.id), segments)

        snapshot = Snapshot(
            environment_id=environment.id,
            environment_key=environment.key,
            project_id=environment.project_id,
            version=self.next_version(environment.id),
            created_at=self._clock(),
            flags=flags,
            segments=segments,
        )
        logger.debug(
            "Built snapshot v%d for environment '%s' with %d flags and %d segments",
            snapshot.version,
            environment.id,
            len(flags),
            len(segments),
        )
        return snapshot

    @staticmethod
    def _build_segment(record: SegmentRecord) -> Segment:
        for condition in record.conditions:
            if condition.is_segment_ref:
                raise SnapshotBuildError(f"segment '{record.key}' references another segment")
        return Segment(
            id=record.id,
            key=record.key,
            conditions=tuple(record.conditions),
            included=tuple(record.included),
            excluded=tuple(record.excluded),
        )

    def _build_flag(
        self,
        flag: FlagRecord,
        config: FlagEnvironmentRecord | None,
        segments: dict[str, Segment],
    ) -> SnapshotFlag:
        ordered = sorted(flag.variations, key=lambda variation: variation.sort_order)
        if not ordered:
            raise SnapshotBuildError(f"flag '{flag.key}' has no variations")
        names = {variation.id: variation.name for variation in ordered}

        default_name = names.get(config.default_variation_id) if config and config.default_variation_id else None
        if default_name is None:
            marked = next((variation for variation in ordered if variation.is_default), ordered[0])
            default_name = marked.name

        off_name = names.get(config.off_variation_id) if config and config.off_variation_id else None
        if off_name is None:
            off_name = ordered[1].name if len(ordered) > 1 else ordered[0].name

        targets: list[TargetRule] = []
        if config is not None:
            for priority, target in enumerate(sorted(config.targets, key=lambda item: item.sort_order)):
                targets.append(self._build_target(flag, target, priority, names, default_name, segments))

        default_rollout = None
        if config is not None and config.default_rollout is not None and config.default_rollout.variations:
            default_rollout = self._build_rollout(flag, config.default_rollout, names)

        variations = {
            variation.name: Variation(
                id=variation.name,
                value=variation.value,
                is_default=variation.name == default_name,
            )
            for variation in ordered
        }
        targeting = TargetingRules(
            enabled=config.enabled if config else False,
            off_variation_id=off_name,
            targets=tuple(targets),
            default_variation_id=None if default_rollout else default_name,
            default_rollout=default_rollout,
        )
        return SnapshotFlag(key=flag.key, flag_type=flag.flag_type, variations=variations, targeting=targeting)

    def _build_target(
        self,
        flag: FlagRecord,
        target: TargetRecord,
        priority: int,
        names: dict[str, str],
        default_name: str,
        segments: dict[str, Segment],
    ) -> TargetRule:
        target_type = TargetType(target.target_type)
        if target_type is TargetType.RULE:
            conditions = tuple(target.conditions)
        elif target_type is TargetType.INDIVIDUAL:
            if not target.attribute:
                raise SnapshotBuildError(f"individual target '{target.id}' of flag '{flag.key}' has no attribute")
            conditions = (Condition(target.attribute, RuleOperator.EQUALS, target.attribute_value),)
        else:
            if not target.segment_key:
                raise SnapshotBuildError(f"segment target '{target.id}' of flag '{flag.key}' has no segment key")
            if target.segment_key not in segments:
                logger.warning(
                    "Target '%s' of flag '%s' references unknown segment '%s'; it will never match",
                    target.id,
                    flag.key,
                    target.segment_key,
                )
            conditions = (Condition.segment(target.segment_key),)

        rollout = None
        variation_id = None
        if target.rollout is not None and target.rollout.variations:
            rollout = self._build_rollout(flag, target.rollout, names)
        elif target.variation_id is not None:
            variation_id = self._variation_name(flag, target.variation_id, names)
        else:
            variation_id = default_name

        return TargetRule(
            id=target.id,
            priority=priority,
            name=target.name,
            conditions=conditions,
            variation_id=variation_id,
            rollout=rollout,
        )

    def _build_rollout(self, flag: FlagRecord, record: RolloutRecord, names: dict[str, str]) -> Rollout:
        variations = self._build_weights(flag, record.variations, names)
        schedule: tuple[ScheduleStep, ...] = ()
        if record.schedule and record.started_at is not None:
            schedule = tuple(
                ScheduleStep(
                    duration_minutes=step.duration_minutes,
                    variations=self._build_weights(flag, step.variations, names),
                )
                for step in record.schedule
            )
        return Rollout(
            variations=variations,
            bucket_by=record.bucket_by,
            seed=record.seed,
            schedule=schedule,
            started_at=record.started_at if schedule else None,
        )

    def _build_weights(
        self,
        flag: FlagRecord,
        weights: Iterable[RolloutWeightRecord],
        names: dict[str, str],
    ) -> tuple[RolloutVariation, ...]:
        built = tuple(
            RolloutVariation(variation_id=self._variation_name(flag, weight.variation_id, names), weight=weight.weight)
            for weight in weights
        )
        if any(item.weight < 0 for item in built):
            raise SnapshotBuildError(f"flag '{flag.key}' has a negative rollout weight")
        total = sum(item.weight for item in built)
        if total != BUCKET_SCALE:
            raise SnapshotBuildError(f"rollout weights of flag '{flag.key}' sum to {total}, expected {BUCKET_SCALE}")
        return built

    @staticmethod
    def _variation_name(flag: FlagRecord, variation_id: str, names: dict[str, str]) -> str:
        try:
            return names[variation_id]
        except KeyError:
            raise SnapshotBuildError(f"flag '{flag.key}' has no variation '{variation_id}'") from None
