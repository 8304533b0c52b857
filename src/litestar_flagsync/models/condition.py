"""Condition models used by target rules and segments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from litestar_flagsync.models.base import freeze_value, thaw_value
from litestar_flagsync.types import RuleOperator

__all__ = ["Condition", "IndividualEntry", "parse_operator"]


def parse_operator(value: RuleOperator | str) -> RuleOperator | str:
    """Parse an operator, keeping unknown operators as raw strings.

    Snapshots written by a newer publisher may use operators this SDK does not
    know; those conditions simply never match.
    """
    if isinstance(value, RuleOperator):
        return value
    try:
        return RuleOperator(value)
    except ValueError:
        return value


@dataclass(frozen=True, slots=True)
class Condition:
    """A single predicate on a context attribute.

    For segment references (``in_segment`` / ``not_in_segment``) ``value`` is
    the segment key and ``attribute`` is ignored.

    Attributes:
        attribute: Attribute name or dotted path in the evaluation context.
        operator: Comparison operator.
        value: Operand compared against the attribute value.

    """

    attribute: str
    operator: RuleOperator | str
    value: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "operator", parse_operator(self.operator))
        object.__setattr__(self, "value", freeze_value(self.value))

    @classmethod
    def segment(cls, segment_key: str, *, negate: bool = False) -> Condition:
        """Build a condition referencing a segment by key."""
        operator = RuleOperator.NOT_IN_SEGMENT if negate else RuleOperator.IN_SEGMENT
        return cls(attribute="", operator=operator, value=segment_key)

    @property
    def is_segment_ref(self) -> bool:
        return isinstance(self.operator, RuleOperator) and self.operator.is_segment_ref

    def to_dict(self) -> dict[str, Any]:
        operator = self.operator.value if isinstance(self.operator, RuleOperator) else self.operator
        return {"attribute": self.attribute, "operator": operator, "value": thaw_value(self.value)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        return cls(attribute=data.get("attribute", ""), operator=data["operator"], value=data.get("value"))


@dataclass(frozen=True, slots=True)
class IndividualEntry:
    """An explicitly listed individual, matched by exact attribute value."""

    attribute: str
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"attribute": self.attribute, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndividualEntry:
        return cls(attribute=data["attribute"], value=data.get("value"))
