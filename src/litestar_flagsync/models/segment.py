"""Segment model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from litestar_flagsync.models.base import freeze_sequence
from litestar_flagsync.models.condition import Condition, IndividualEntry

__all__ = ["Segment"]


@dataclass(frozen=True, slots=True)
class Segment:
    """A named, reusable set of targeting conditions.

    Segments are stored once per snapshot and referenced from rules by key.
    Matching checks ``excluded`` first (never matches), then ``included``
    (always matches), then requires every condition to hold. Segment
    conditions may not reference other segments.

    Attributes:
        key: Unique segment key within the snapshot.
        conditions: Conditions that must all hold.
        included: Individuals that always match.
        excluded: Individuals that never match.
        id: Identifier of the source record.

    """

    key: str
    conditions: tuple[Condition, ...] = ()
    included: tuple[IndividualEntry, ...] = ()
    excluded: tuple[IndividualEntry, ...] = ()
    id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "conditions", freeze_sequence(self.conditions))
        object.__setattr__(self, "included", freeze_sequence(self.included))
        object.__setattr__(self, "excluded", freeze_sequence(self.excluded))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "conditions": [condition.to_dict() for condition in self.conditions],
            "included": [entry.to_dict() for entry in self.included],
            "excluded": [entry.to_dict() for entry in self.excluded],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Segment:
        return cls(
            id=data.get("id"),
            key=data["key"],
            conditions=tuple(Condition.from_dict(item) for item in data.get("conditions") or ()),
            included=tuple(IndividualEntry.from_dict(item) for item in data.get("included") or ()),
            excluded=tuple(IndividualEntry.from_dict(item) for item in data.get("excluded") or ()),
        )
