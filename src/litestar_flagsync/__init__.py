"""litestar-flagsync: feature flag snapshot distribution for Litestar.

The server side builds immutable, versioned snapshots of each environment's
flags and pushes them to connected clients; the client SDK evaluates flags
locally against its synchronised copy, identically on every client.
"""

from __future__ import annotations

from litestar_flagsync.builder import SnapshotBuilder
from litestar_flagsync.client import ClientOptions, FlagSyncClient
from litestar_flagsync.config import FlagSyncConfig
from litestar_flagsync.context import EvaluationContext
from litestar_flagsync.engine import EvaluationEngine, evaluate
from litestar_flagsync.exceptions import (
    ConfigNotFoundError,
    ConfigurationError,
    FlagSyncError,
    MalformedConditionError,
    SnapshotBuildError,
    StaleOrUnreachableError,
    TransportError,
)
from litestar_flagsync.health import HealthCheckResult, HealthStatus, health_check
from litestar_flagsync.hashing import bucket_for, hash_string
from litestar_flagsync.models import (
    Condition,
    IndividualEntry,
    Rollout,
    RolloutVariation,
    ScheduleStep,
    Segment,
    Snapshot,
    SnapshotFlag,
    TargetingRules,
    TargetRule,
    Variation,
)
from litestar_flagsync.plugin import FlagSyncPlugin
from litestar_flagsync.preview import preview_flag
from litestar_flagsync.publisher import PublishReport, SnapshotPublisher
from litestar_flagsync.registry import RoomRegistry
from litestar_flagsync.resilience import RetryPolicy, resilient_call
from litestar_flagsync.results import EvaluationResult
from litestar_flagsync.room import DistributionRoom, Subscriber
from litestar_flagsync.sources import MemorySourceRepository, SourceRecords, SourceRepository
from litestar_flagsync.storage import MemorySnapshotStorage, SnapshotStorage
from litestar_flagsync.telemetry import EvaluationEvent, TelemetryHub, TelemetryObserver
from litestar_flagsync.types import ErrorCode, EvaluationReason, FlagType, RuleOperator, TargetType

__version__ = "0.1.0"

__all__ = [
    "ClientOptions",
    "Condition",
    "ConfigNotFoundError",
    "ConfigurationError",
    "DistributionRoom",
    "ErrorCode",
    "EvaluationContext",
    "EvaluationEngine",
    "EvaluationEvent",
    "EvaluationReason",
    "EvaluationResult",
    "FlagSyncClient",
    "FlagSyncConfig",
    "FlagSyncError",
    "FlagSyncPlugin",
    "FlagType",
    "HealthCheckResult",
    "HealthStatus",
    "IndividualEntry",
    "MalformedConditionError",
    "MemorySnapshotStorage",
    "MemorySourceRepository",
    "PublishReport",
    "RetryPolicy",
    "RoomRegistry",
    "Rollout",
    "RolloutVariation",
    "RuleOperator",
    "ScheduleStep",
    "Segment",
    "Snapshot",
    "SnapshotBuildError",
    "SnapshotBuilder",
    "SnapshotFlag",
    "SnapshotPublisher",
    "SnapshotStorage",
    "SourceRecords",
    "SourceRepository",
    "StaleOrUnreachableError",
    "Subscriber",
    "TargetRule",
    "TargetType",
    "TargetingRules",
    "TelemetryHub",
    "TelemetryObserver",
    "TransportError",
    "Variation",
    "__version__",
    "bucket_for",
    "evaluate",
    "hash_string",
    "health_check",
    "preview_flag",
    "resilient_call",
]
