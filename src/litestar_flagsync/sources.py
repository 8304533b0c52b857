"""Source records consumed by the snapshot builder.

The administrative surface that edits flags is an external collaborator; the
builder only sees the plain records defined here. A :class:`SourceRepository`
loads them for one environment. :class:`MemorySourceRepository` is a complete
in-memory implementation used by tests, examples and single-process
deployments.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from litestar_flagsync.exceptions import ConfigNotFoundError
from litestar_flagsync.models.condition import Condition, IndividualEntry
from litestar_flagsync.types import FlagType, TargetType

__all__ = [
    "EnvironmentRecord",
    "FlagEnvironmentRecord",
    "FlagRecord",
    "MemorySourceRepository",
    "RolloutRecord",
    "RolloutWeightRecord",
    "ScheduleStepRecord",
    "SegmentRecord",
    "SourceRecords",
    "SourceRepository",
    "TargetRecord",
    "VariationRecord",
]


@dataclass
class EnvironmentRecord:
    """An environment of a project, addressed by SDKs through ``key``."""

    id: str
    key: str
    project_id: str
    deleted: bool = False


@dataclass
class VariationRecord:
    """A stored flag variation.

    ``name`` becomes the variation id in the published snapshot.
    """

    id: str
    name: str
    value: Any
    is_default: bool = False
    sort_order: int = 0


@dataclass
class FlagRecord:
    id: str
    key: str
    project_id: str
    flag_type: FlagType = FlagType.BOOLEAN
    variations: list[VariationRecord] = field(default_factory=list)
    archived: bool = False


@dataclass
class RolloutWeightRecord:
    variation_id: str
    weight: int


@dataclass
class ScheduleStepRecord:
    duration_minutes: float
    variations: list[RolloutWeightRecord] = field(default_factory=list)


@dataclass
class RolloutRecord:
    """A stored rollout; weights reference variation record ids."""

    variations: list[RolloutWeightRecord] = field(default_factory=list)
    bucket_by: str | None = None
    seed: str | None = None
    schedule: list[ScheduleStepRecord] = field(default_factory=list)
    started_at: datetime | None = None


@dataclass
class TargetRecord:
    """One stored target of a flag in an environment.

    Depending on ``target_type`` only some fields are used:

    - ``rule``: ``conditions``
    - ``individual``: ``attribute`` and ``attribute_value``
    - ``segment``: ``segment_key``
    """

    id: str
    target_type: TargetType
    sort_order: int = 0
    name: str | None = None
    variation_id: str | None = None
    rollout: RolloutRecord | None = None
    conditions: list[Condition] = field(default_factory=list)
    attribute: str | None = None
    attribute_value: Any = None
    segment_key: str | None = None


@dataclass
class FlagEnvironmentRecord:
    """Per-environment configuration of one flag."""

    flag_id: str
    enabled: bool = False
    default_variation_id: str | None = None
    off_variation_id: str | None = None
    default_rollout: RolloutRecord | None = None
    targets: list[TargetRecord] = field(default_factory=list)


@dataclass
class SegmentRecord:
    id: str
    key: str
    project_id: str
    conditions: list[Condition] = field(default_factory=list)
    included: list[IndividualEntry] = field(default_factory=list)
    excluded: list[IndividualEntry] = field(default_factory=list)
    deleted: bool = False


@dataclass
class SourceRecords:
    """Everything needed to build one environment's snapshot."""

    environment: EnvironmentRecord
    flags: list[FlagRecord] = field(default_factory=list)
    flag_environments: dict[str, FlagEnvironmentRecord] = field(default_factory=dict)
    segments: list[SegmentRecord] = field(default_factory=list)


@runtime_checkable
class SourceRepository(Protocol):
    """Loads source records from the administrative store."""

    async def load_environment(self, environment_id: str) -> SourceRecords:
        """Load the records of one environment.

        Raises:
            ConfigNotFoundError: If the environment does not exist.

        """
        ...

    async def list_environments(self, project_id: str) -> list[EnvironmentRecord]:
        """List the live environments of a project."""
        ...


class MemorySourceRepository:
    """In-memory source repository.

    Example:
        >>> repository = MemorySourceRepository()
        >>> repository.add_environment(EnvironmentRecord(id="env-1", key="production", project_id="p1"))

    """

    def __init__(self) -> None:
        self._environments: dict[str, EnvironmentRecord] = {}
        self._flags: dict[str, FlagRecord] = {}
        self._flag_environments: dict[tuple[str, str], FlagEnvironmentRecord] = {}
        self._segments: dict[str, SegmentRecord] = {}

    def add_environment(self, environment: EnvironmentRecord) -> None:
        self._environments[environment.id] = environment

    def upsert_flag(self, flag: FlagRecord) -> None:
        self._flags[flag.id] = flag

    def configure_flag(self, environment_id: str, config: FlagEnvironmentRecord) -> None:
        self._flag_environments[(environment_id, config.flag_id)] = config

    def upsert_segment(self, segment: SegmentRecord) -> None:
        self._segments[segment.id] = segment

    async def load_environment(self, environment_id: str) -> SourceRecords:
        environment = self._environments.get(environment_id)
        if environment is None or environment.deleted:
            raise ConfigNotFoundError("environment", environment_id)

        project_id = environment.project_id
        flags = [flag for flag in self._flags.values() if flag.project_id == project_id]
        configs = {
            flag_id: config for (env_id, flag_id), config in self._flag_environments.items() if env_id == environment_id
        }
        segments = [segment for segment in self._segments.values() if segment.project_id == project_id]
        return SourceRecords(environment=environment, flags=flags, flag_environments=configs, segments=segments)

    async def list_environments(self, project_id: str) -> list[EnvironmentRecord]:
        return [env for env in self._environments.values() if env.project_id == project_id and not env.deleted]
