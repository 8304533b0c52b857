"""Immutable snapshot models."""

from __future__ import annotations

from litestar_flagsync.models.condition import Condition, IndividualEntry
from litestar_flagsync.models.flag import SnapshotFlag
from litestar_flagsync.models.rollout import Rollout, RolloutVariation, ScheduleStep
from litestar_flagsync.models.rule import TargetingRules, TargetRule
from litestar_flagsync.models.segment import Segment
from litestar_flagsync.models.snapshot import Snapshot
from litestar_flagsync.models.variation import Variation

__all__ = [
    "Condition",
    "IndividualEntry",
    "Rollout",
    "RolloutVariation",
    "ScheduleStep",
    "Segment",
    "Snapshot",
    "SnapshotFlag",
    "TargetRule",
    "TargetingRules",
    "Variation",
]
