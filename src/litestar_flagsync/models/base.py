"""Shared helpers for the immutable snapshot models."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, TypeVar

__all__ = [
    "format_datetime",
    "freeze_mapping",
    "freeze_sequence",
    "freeze_value",
    "parse_datetime",
    "thaw_value",
]

T = TypeVar("T")


def freeze_value(value: Any) -> Any:
    """Recursively convert dicts and lists into read-only equivalents."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze_value(item) for key, item in value.items()})
    if isinstance(value, list | tuple):
        return tuple(freeze_value(item) for item in value)
    return value


def thaw_value(value: Any) -> Any:
    """Inverse of :func:`freeze_value`, producing JSON-friendly containers."""
    if isinstance(value, Mapping):
        return {key: thaw_value(item) for key, item in value.items()}
    if isinstance(value, tuple | list):
        return [thaw_value(item) for item in value]
    return value


def freeze_mapping(value: Mapping[str, T] | None) -> Mapping[str, T]:
    return MappingProxyType(dict(value or {}))


def freeze_sequence(value: Iterable[T] | None) -> tuple[T, ...]:
    return tuple(value or ())


def parse_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()
