"""Target rule and per-environment targeting models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from litestar_flagsync.models.base import freeze_sequence
from litestar_flagsync.models.condition import Condition
from litestar_flagsync.models.rollout import Rollout

__all__ = ["TargetRule", "TargetingRules"]


@dataclass(frozen=True, slots=True)
class TargetRule:
    """One ordered targeting rule.

    All conditions must hold (logical AND); an empty condition list always
    matches. The outcome is either a fixed variation or a weighted rollout.

    Attributes:
        id: Rule identifier reported as ``matched_rule_id``.
        priority: Position in evaluation order, lower first.
        conditions: Conditions combined with AND.
        variation_id: Fixed variation served on match.
        rollout: Weighted rollout served on match; takes precedence over
            ``variation_id``.
        name: Optional display name.

    """

    id: str
    priority: int
    conditions: tuple[Condition, ...] = ()
    variation_id: str | None = None
    rollout: Rollout | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "conditions", freeze_sequence(self.conditions))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "priority": self.priority,
            "name": self.name,
            "conditions": [condition.to_dict() for condition in self.conditions],
            "variation_id": self.variation_id,
            "rollout": self.rollout.to_dict() if self.rollout else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TargetRule:
        rollout = data.get("rollout")
        return cls(
            id=data["id"],
            priority=int(data.get("priority", 0)),
            name=data.get("name"),
            conditions=tuple(Condition.from_dict(item) for item in data.get("conditions") or ()),
            variation_id=data.get("variation_id"),
            rollout=Rollout.from_dict(rollout) if rollout else None,
        )


@dataclass(frozen=True, slots=True)
class TargetingRules:
    """Ruleset of one flag in one environment.

    Targets are kept sorted by priority so evaluation order is total and
    stable regardless of the order they were supplied in.
    """

    enabled: bool
    off_variation_id: str
    targets: tuple[TargetRule, ...] = ()
    default_variation_id: str | None = None
    default_rollout: Rollout | None = None

    def __post_init__(self) -> None:
        ordered = sorted(freeze_sequence(self.targets), key=lambda target: target.priority)
        object.__setattr__(self, "targets", tuple(ordered))

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "off_variation_id": self.off_variation_id,
            "default_variation_id": self.default_variation_id,
            "default_rollout": self.default_rollout.to_dict() if self.default_rollout else None,
            "targets": [target.to_dict() for target in self.targets],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TargetingRules:
        default_rollout = data.get("default_rollout")
        return cls(
            enabled=bool(data.get("enabled", False)),
            off_variation_id=data["off_variation_id"],
            default_variation_id=data.get("default_variation_id"),
            default_rollout=Rollout.from_dict(default_rollout) if default_rollout else None,
            targets=tuple(TargetRule.from_dict(item) for item in data.get("targets") or ()),
        )
