"""Snapshot model: the immutable published configuration of one environment."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from litestar_flagsync.models.base import format_datetime, freeze_mapping, parse_datetime
from litestar_flagsync.models.flag import SnapshotFlag
from litestar_flagsync.models.segment import Segment

__all__ = ["Snapshot"]


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Immutable, versioned bundle of all flag, rule and segment data.

    A snapshot is never mutated after creation; a publish produces a new one
    with a strictly greater ``version`` that supersedes it.

    The wire format keeps flag definitions, rules by flag and segments in
    separate top-level maps::

        {
            "version": 1718000000000,
            "environment_id": "env-1",
            "flags": {"new-ui": {"key": "new-ui", "flag_type": "boolean", "variations": [...]}},
            "rules": {"new-ui": {"enabled": true, "targets": [...], ...}},
            "segments": {"beta": {"key": "beta", "conditions": [...]}},
        }

    Attributes:
        environment_id: Environment the snapshot was built for.
        version: Monotonic version, strictly increasing per publish.
        flags: Flags keyed by flag key.
        segments: Segments keyed by segment key.
        created_at: Build time.
        environment_key: Public environment key used by SDKs.
        project_id: Owning project.

    """

    environment_id: str
    version: int
    flags: Mapping[str, SnapshotFlag] = field(default_factory=dict)
    segments: Mapping[str, Segment] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    environment_key: str | None = None
    project_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "flags", freeze_mapping(self.flags))
        object.__setattr__(self, "segments", freeze_mapping(self.segments))

    @property
    def etag(self) -> str:
        """Strong entity tag derived from the version."""
        return f'"{self.version}"'

    def get_flag(self, flag_key: str) -> SnapshotFlag | None:
        return self.flags.get(flag_key)

    def get_segment(self, segment_key: str) -> Segment | None:
        return self.segments.get(segment_key)

    def supersedes(self, other: Snapshot | None) -> bool:
        """Whether this snapshot should replace ``other`` in a cache."""
        return other is None or self.version > other.version

    def to_dict(self) -> dict[str, Any]:
        flags: dict[str, Any] = {}
        rules: dict[str, Any] = {}
        for key, flag in self.flags.items():
            document = flag.to_dict()
            rules[key] = document.pop("targeting")
            flags[key] = document
        return {
            "environment_id": self.environment_id,
            "environment_key": self.environment_key,
            "project_id": self.project_id,
            "version": self.version,
            "created_at": format_datetime(self.created_at),
            "flags": flags,
            "rules": rules,
            "segments": {key: segment.to_dict() for key, segment in self.segments.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        rules: dict[str, Any] = data.get("rules") or {}
        flags: dict[str, SnapshotFlag] = {}
        for key, document in (data.get("flags") or {}).items():
            targeting = rules.get(key)
            if targeting is None:
                # A flag published without rules is served as switched off.
                variations = document.get("variations") or [{}]
                targeting = {"enabled": False, "off_variation_id": variations[0].get("id", "")}
            flags[key] = SnapshotFlag.from_dict({**document, "targeting": targeting})

        created_at = parse_datetime(data.get("created_at")) or datetime.now(UTC)
        return cls(
            environment_id=data["environment_id"],
            environment_key=data.get("environment_key"),
            project_id=data.get("project_id"),
            version=int(data["version"]),
            created_at=created_at,
            flags=flags,
            segments={key: Segment.from_dict(item) for key, item in (data.get("segments") or {}).items()},
        )

