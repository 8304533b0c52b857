"""Weighted rollout models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from litestar_flagsync.models.base import format_datetime, freeze_sequence, parse_datetime

__all__ = ["Rollout", "RolloutVariation", "ScheduleStep"]


@dataclass(frozen=True, slots=True)
class RolloutVariation:
    """A (variation, weight) pair; weight is in basis points out of 100000."""

    variation_id: str
    weight: int

    def to_dict(self) -> dict[str, Any]:
        return {"variation_id": self.variation_id, "weight": self.weight}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RolloutVariation:
        return cls(variation_id=data["variation_id"], weight=int(data["weight"]))


@dataclass(frozen=True, slots=True)
class ScheduleStep:
    """One step of a gradual rollout.

    A step with ``duration_minutes == 0`` holds indefinitely.
    """

    duration_minutes: float
    variations: tuple[RolloutVariation, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "variations", freeze_sequence(self.variations))

    def to_dict(self) -> dict[str, Any]:
        return {
            "duration_minutes": self.duration_minutes,
            "variations": [variation.to_dict() for variation in self.variations],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduleStep:
        return cls(
            duration_minutes=data["duration_minutes"],
            variations=tuple(RolloutVariation.from_dict(item) for item in data.get("variations") or ()),
        )


@dataclass(frozen=True, slots=True)
class Rollout:
    """A weighted split of traffic across variations.

    Attributes:
        variations: Weighted variations walked in declaration order.
        bucket_by: Context attribute hashed for bucketing; defaults to the
            context's bucketing key.
        seed: Optional salt mixed into the hash input to reshuffle buckets.
        schedule: Optional gradual rollout steps, active from ``started_at``.
        started_at: Start of the schedule.

    """

    variations: tuple[RolloutVariation, ...]
    bucket_by: str | None = None
    seed: str | None = None
    schedule: tuple[ScheduleStep, ...] = ()
    started_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "variations", freeze_sequence(self.variations))
        object.__setattr__(self, "schedule", freeze_sequence(self.schedule))
        # Naive start times are UTC.
        object.__setattr__(self, "started_at", parse_datetime(self.started_at))

    @property
    def total_weight(self) -> int:
        return sum(variation.weight for variation in self.variations)

    def active_variations(self, now: datetime) -> tuple[tuple[RolloutVariation, ...], int]:
        """Resolve the weights in effect at ``now``.

        Returns:
            The active weighted variations and the schedule step index, or
            ``-1`` when the rollout has no schedule.

        """
        if not self.schedule or self.started_at is None:
            return self.variations, -1

        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        elapsed_minutes = (now - self.started_at).total_seconds() / 60
        if elapsed_minutes < 0:
            return self.schedule[0].variations, 0

        cumulative = 0.0
        for index, step in enumerate(self.schedule):
            if step.duration_minutes == 0:
                return step.variations, index
            cumulative += step.duration_minutes
            if elapsed_minutes < cumulative:
                return step.variations, index

        return self.schedule[-1].variations, len(self.schedule) - 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "variations": [variation.to_dict() for variation in self.variations],
            "bucket_by": self.bucket_by,
            "seed": self.seed,
            "schedule": [step.to_dict() for step in self.schedule],
            "started_at": format_datetime(self.started_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rollout:
        return cls(
            variations=tuple(RolloutVariation.from_dict(item) for item in data.get("variations") or ()),
            bucket_by=data.get("bucket_by"),
            seed=data.get("seed"),
            schedule=tuple(ScheduleStep.from_dict(item) for item in data.get("schedule") or ()),
            started_at=parse_datetime(data.get("started_at")),
        )
