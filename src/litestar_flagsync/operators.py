"""Condition operator implementations.

Every operator compares the context attribute value (``actual``) against the
condition operand (``expected``). Operand/operator type mismatches raise
:class:`~litestar_flagsync.exceptions.MalformedConditionError`, which the
engine turns into a non-matching condition. A missing attribute (``None``) is
not a mismatch: positive operators do not match it and negated operators do.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from functools import lru_cache
from typing import Any

from litestar_flagsync.exceptions import MalformedConditionError
from litestar_flagsync.types import RuleOperator

__all__ = [
    "compare_semver",
    "evaluate_operator",
    "parse_semver",
    "strict_equals",
]

_SEMVER_PATTERN = re.compile(
    r"^v?(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)

SemVer = tuple[tuple[int, int, int], tuple[str, ...]]


def strict_equals(actual: Any, expected: Any) -> bool:
    """Type-aware equality: booleans never equal numbers."""
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    if isinstance(actual, list | tuple) and isinstance(expected, list | tuple):
        return len(actual) == len(expected) and all(strict_equals(a, e) for a, e in zip(actual, expected, strict=True))
    return actual == expected


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, list | tuple)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def parse_semver(version: str) -> SemVer | None:
    """Parse a semantic version, padding missing minor/patch with zeros.

    Returns:
        ``((major, minor, patch), prerelease_identifiers)`` or ``None`` when
        the string is not a version.

    """
    match = _SEMVER_PATTERN.match(version.strip())
    if match is None:
        return None
    core = (int(match["major"]), int(match["minor"] or 0), int(match["patch"] or 0))
    prerelease = tuple(match["prerelease"].split(".")) if match["prerelease"] else ()
    return core, prerelease


def _compare_identifiers(left: str, right: str) -> int:
    left_numeric, right_numeric = left.isdigit(), right.isdigit()
    if left_numeric and right_numeric:
        return (int(left) > int(right)) - (int(left) < int(right))
    if left_numeric != right_numeric:
        return -1 if left_numeric else 1
    return (left > right) - (left < right)


def compare_semver(left: str, right: str) -> int | None:
    """Compare two versions, returning -1, 0, 1, or ``None`` if unparsable."""
    parsed_left, parsed_right = parse_semver(left), parse_semver(right)
    if parsed_left is None or parsed_right is None:
        return None

    (left_core, left_pre), (right_core, right_pre) = parsed_left, parsed_right
    if left_core != right_core:
        return -1 if left_core < right_core else 1
    if left_pre == right_pre:
        return 0
    # A release outranks any of its pre-releases.
    if not left_pre:
        return 1
    if not right_pre:
        return -1
    for left_id, right_id in zip(left_pre, right_pre, strict=False):
        result = _compare_identifiers(left_id, right_id)
        if result:
            return result
    return (len(left_pre) > len(right_pre)) - (len(left_pre) < len(right_pre))


def _mismatch(operator: RuleOperator, actual: Any, expected: Any) -> MalformedConditionError:
    return MalformedConditionError(
        f"operator '{operator.value}' cannot compare {type(actual).__name__} with {type(expected).__name__}"
    )


def _membership(operator: RuleOperator, actual: Any, expected: Any) -> bool:
    if not _is_sequence(expected):
        raise _mismatch(operator, actual, expected)
    return any(strict_equals(actual, candidate) for candidate in expected)


def _contains(operator: RuleOperator, actual: Any, expected: Any) -> bool:
    if isinstance(actual, str) and isinstance(expected, str):
        return expected in actual
    if _is_sequence(actual):
        return any(strict_equals(item, expected) for item in actual)
    raise _mismatch(operator, actual, expected)


def _string_op(operator: RuleOperator, actual: Any, expected: Any) -> bool:
    if not (isinstance(actual, str) and isinstance(expected, str)):
        raise _mismatch(operator, actual, expected)
    if operator is RuleOperator.STARTS_WITH:
        return actual.startswith(expected)
    if operator is RuleOperator.ENDS_WITH:
        return actual.endswith(expected)
    try:
        return _compile(expected).search(actual) is not None
    except re.error as exc:
        raise MalformedConditionError(f"invalid regex {expected!r}: {exc}") from exc


_NUMERIC: dict[RuleOperator, Callable[[float, float], bool]] = {
    RuleOperator.GREATER_THAN: lambda a, e: a > e,
    RuleOperator.GREATER_THAN_OR_EQUAL: lambda a, e: a >= e,
    RuleOperator.LESS_THAN: lambda a, e: a < e,
    RuleOperator.LESS_THAN_OR_EQUAL: lambda a, e: a <= e,
}

_SEMVER: dict[RuleOperator, Callable[[int], bool]] = {
    RuleOperator.SEMVER_EQ: lambda c: c == 0,
    RuleOperator.SEMVER_GT: lambda c: c > 0,
    RuleOperator.SEMVER_GTE: lambda c: c >= 0,
    RuleOperator.SEMVER_LT: lambda c: c < 0,
    RuleOperator.SEMVER_LTE: lambda c: c <= 0,
}

_NEGATED = {
    RuleOperator.NOT_EQUALS: RuleOperator.EQUALS,
    RuleOperator.NOT_IN: RuleOperator.IN,
    RuleOperator.NOT_CONTAINS: RuleOperator.CONTAINS,
}


def evaluate_operator(operator: RuleOperator | str, actual: Any, expected: Any) -> bool:
    """Apply an attribute operator.

    Segment operators are resolved by the segment evaluator, not here.

    Args:
        operator: The condition operator.
        actual: Attribute value from the context (``None`` when missing).
        expected: Condition operand.

    Returns:
        Whether the condition holds.

    Raises:
        MalformedConditionError: If the operator is unknown or the operands
            have the wrong types for it.

    """
    if not isinstance(operator, RuleOperator) or operator.is_segment_ref:
        raise MalformedConditionError(f"unsupported operator {operator!r}")

    if operator is RuleOperator.EXISTS:
        return actual is not None
    if operator is RuleOperator.NOT_EXISTS:
        return actual is None
    if operator is RuleOperator.EQUALS:
        return strict_equals(actual, expected)

    if operator in _NEGATED:
        if actual is None and operator is not RuleOperator.NOT_IN:
            return True
        return not evaluate_operator(_NEGATED[operator], actual, expected)

    if operator is RuleOperator.IN:
        return _membership(operator, actual, expected)

    if actual is None:
        return False

    if operator is RuleOperator.CONTAINS:
        return _contains(operator, actual, expected)
    if operator in (RuleOperator.STARTS_WITH, RuleOperator.ENDS_WITH, RuleOperator.MATCHES):
        return _string_op(operator, actual, expected)
    if operator in _NUMERIC:
        if not (_is_number(actual) and _is_number(expected)):
            raise _mismatch(operator, actual, expected)
        return _NUMERIC[operator](actual, expected)
    if operator in _SEMVER:
        if not (isinstance(actual, str) and isinstance(expected, str)):
            raise _mismatch(operator, actual, expected)
        comparison = compare_semver(actual, expected)
        if comparison is None:
            raise MalformedConditionError(f"cannot compare versions {actual!r} and {expected!r}")
        return _SEMVER[operator](comparison)

    raise MalformedConditionError(f"unsupported operator {operator!r}")
