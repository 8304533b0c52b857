"""Published flag model."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from litestar_flagsync.models.base import freeze_mapping
from litestar_flagsync.models.rule import TargetingRules
from litestar_flagsync.models.variation import Variation
from litestar_flagsync.types import FlagType

__all__ = ["SnapshotFlag"]


@dataclass(frozen=True, slots=True)
class SnapshotFlag:
    """A flag as published for one environment.

    Attributes:
        key: Flag key used by SDK callers.
        flag_type: Type of the served values.
        variations: Variations keyed by id.
        targeting: The flag's targeting rules in this environment.

    """

    key: str
    flag_type: FlagType
    variations: Mapping[str, Variation]
    targeting: TargetingRules

    def __post_init__(self) -> None:
        object.__setattr__(self, "flag_type", FlagType(self.flag_type))
        object.__setattr__(self, "variations", freeze_mapping(self.variations))

    def get_variation(self, variation_id: str | None) -> Variation | None:
        if variation_id is None:
            return None
        return self.variations.get(variation_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "flag_type": self.flag_type.value,
            "variations": [variation.to_dict() for variation in self.variations.values()],
            "targeting": self.targeting.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotFlag:
        variations = [Variation.from_dict(item) for item in data.get("variations") or ()]
        return cls(
            key=data["key"],
            flag_type=FlagType(data.get("flag_type", FlagType.BOOLEAN.value)),
            variations={variation.id: variation for variation in variations},
            targeting=TargetingRules.from_dict(data["targeting"]),
        )
