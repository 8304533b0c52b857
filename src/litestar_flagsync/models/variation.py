"""Variation model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from litestar_flagsync.models.base import freeze_value, thaw_value

__all__ = ["Variation"]


@dataclass(frozen=True, slots=True)
class Variation:
    """One possible output value of a flag.

    Attributes:
        id: Identifier referenced by rules and rollouts (the variation name in
            the published snapshot).
        value: The flag value served for this variation. JSON values are
            stored read-only.
        is_default: Whether the variation is the flag's default.
        name: Optional display name.

    """

    id: str
    value: Any
    is_default: bool = False
    name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", freeze_value(self.value))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "value": thaw_value(self.value),
            "is_default": self.is_default,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Variation:
        return cls(
            id=data["id"],
            value=data.get("value"),
            is_default=bool(data.get("is_default", False)),
            name=data.get("name"),
        )
