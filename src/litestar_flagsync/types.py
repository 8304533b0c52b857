"""Type definitions and enums for litestar-flagsync."""

from __future__ import annotations

from enum import Enum

__all__ = [
    "ErrorCode",
    "EvaluationReason",
    "FlagType",
    "RuleOperator",
    "TargetType",
]


class FlagType(str, Enum):
    """Type of value a feature flag returns."""

    BOOLEAN = "boolean"
    STRING = "string"
    NUMBER = "number"
    JSON = "json"


class TargetType(str, Enum):
    """Kind of target record authored for a flag environment.

    Only used by the snapshot builder; published snapshots express every
    target as a list of conditions.
    """

    RULE = "rule"
    INDIVIDUAL = "individual"
    SEGMENT = "segment"


class EvaluationReason(str, Enum):
    """Reason for the evaluation result."""

    RULE_MATCH = "RULE_MATCH"
    DEFAULT = "DEFAULT"
    OFF = "OFF"
    FALLBACK = "FALLBACK"
    ERROR = "ERROR"


class ErrorCode(str, Enum):
    """Error codes attached to ERROR and FALLBACK results."""

    FLAG_NOT_FOUND = "FLAG_NOT_FOUND"
    VARIATION_NOT_FOUND = "VARIATION_NOT_FOUND"
    NOT_READY = "NOT_READY"
    GENERAL_ERROR = "GENERAL_ERROR"


class RuleOperator(str, Enum):
    """Operators for targeting conditions."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    MATCHES = "regex"
    GREATER_THAN = "gt"
    GREATER_THAN_OR_EQUAL = "gte"
    LESS_THAN = "lt"
    LESS_THAN_OR_EQUAL = "lte"
    SEMVER_EQ = "semver_eq"
    SEMVER_GT = "semver_gt"
    SEMVER_GTE = "semver_gte"
    SEMVER_LT = "semver_lt"
    SEMVER_LTE = "semver_lte"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    IN_SEGMENT = "in_segment"
    NOT_IN_SEGMENT = "not_in_segment"

    @property
    def is_segment_ref(self) -> bool:
        """Whether the operator resolves a segment instead of an attribute."""
        return self in (RuleOperator.IN_SEGMENT, RuleOperator.NOT_IN_SEGMENT)
