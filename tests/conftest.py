"""Test fixtures for litestar-flagsync."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import TYPE_CHECKING, Any

import pytest

from litestar_flagsync import (
    Condition,
    FlagSyncConfig,
    FlagSyncPlugin,
    MemorySnapshotStorage,
    MemorySourceRepository,
    Rollout,
    RolloutVariation,
    RoomRegistry,
    RuleOperator,
    Segment,
    Snapshot,
    SnapshotFlag,
    TargetingRules,
    TargetRule,
    Variation,
)
from litestar_flagsync.sources import (
    EnvironmentRecord,
    FlagEnvironmentRecord,
    FlagRecord,
    RolloutRecord,
    RolloutWeightRecord,
    TargetRecord,
    VariationRecord,
)
from litestar_flagsync.types import FlagType, TargetType

if TYPE_CHECKING:
    from litestar import Litestar
    from litestar.testing import TestClient


# -----------------------------------------------------------------------------
# pytest-asyncio Configuration
# -----------------------------------------------------------------------------
pytest_plugins = ["pytest_asyncio"]


# -----------------------------------------------------------------------------
# Snapshot Fixtures
# -----------------------------------------------------------------------------
def make_new_ui_flag(enabled: bool = True) -> SnapshotFlag:
    """The ``new-ui`` flag: enterprise plans get it, 20% of everyone else."""
    return SnapshotFlag(
        key="new-ui",
        flag_type=FlagType.BOOLEAN,
        variations={
            "on": Variation(id="on", value=True),
            "off": Variation(id="off", value=False, is_default=True),
        },
        targeting=TargetingRules(
            enabled=enabled,
            off_variation_id="off",
            targets=(
                TargetRule(
                    id="enterprise",
                    priority=0,
                    conditions=(Condition("plan", RuleOperator.EQUALS, "enterprise"),),
                    variation_id="on",
                ),
            ),
            default_rollout=Rollout(
                variations=(
                    RolloutVariation("on", 20_000),
                    RolloutVariation("off", 80_000),
                ),
            ),
        ),
    )


def make_theme_flag() -> SnapshotFlag:
    """A string flag whose beta testers get the dark theme."""
    return SnapshotFlag(
        key="theme",
        flag_type=FlagType.STRING,
        variations={
            "light": Variation(id="light", value="light", is_default=True),
            "dark": Variation(id="dark", value="dark"),
        },
        targeting=TargetingRules(
            enabled=True,
            off_variation_id="light",
            default_variation_id="light",
            targets=(
                TargetRule(
                    id="beta", priority=0, conditions=(Condition.segment("beta-testers"),), variation_id="dark"
                ),
            ),
        ),
    )


def make_beta_segment() -> Segment:
    return Segment(
        key="beta-testers",
        conditions=(Condition("email", RuleOperator.ENDS_WITH, "@example.com"),),
    )


@pytest.fixture
def new_ui_flag_factory() -> Callable[..., SnapshotFlag]:
    return make_new_ui_flag


@pytest.fixture
def snapshot_factory() -> Callable[..., Snapshot]:
    """Create snapshots of the ``production`` environment at a given version."""

    def factory(
        version: int = 1,
        environment_id: str = "env-1",
        environment_key: str = "production",
        flags: dict[str, SnapshotFlag] | None = None,
        segments: dict[str, Segment] | None = None,
        **kwargs: Any,
    ) -> Snapshot:
        if flags is None:
            flags = {"new-ui": make_new_ui_flag(), "theme": make_theme_flag()}
        if segments is None:
            segments = {"beta-testers": make_beta_segment()}
        return Snapshot(
            environment_id=environment_id,
            environment_key=environment_key,
            project_id="proj-1",
            version=version,
            flags=flags,
            segments=segments,
            **kwargs,
        )

    return factory


@pytest.fixture
def snapshot(snapshot_factory: Callable[..., Snapshot]) -> Snapshot:
    return snapshot_factory()


# -----------------------------------------------------------------------------
# Storage Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def storage() -> MemorySnapshotStorage:
    """Create a memory snapshot storage."""
    return MemorySnapshotStorage()


@pytest.fixture
def registry(storage: MemorySnapshotStorage) -> RoomRegistry:
    return RoomRegistry(storage, buffer_size=4)


# -----------------------------------------------------------------------------
# Fakeredis Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def fake_redis():
    """Create a fake Redis client for testing.

    Requires fakeredis package.
    """
    try:
        import fakeredis.aioredis
    except ImportError:
        pytest.skip("fakeredis not installed")

    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
async def redis_storage(fake_redis) -> AsyncGenerator:
    """Create a Redis snapshot storage using fakeredis."""
    try:
        from litestar_flagsync.storage.redis import RedisSnapshotStorage
    except ImportError:
        pytest.skip("redis extra not installed")

    backend = RedisSnapshotStorage(redis=fake_redis, prefix="test:")
    yield backend
    await fake_redis.flushall()


# -----------------------------------------------------------------------------
# Source Record Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def source_repository() -> MemorySourceRepository:
    """A project with a ``production`` and a ``staging`` environment.

    ``new-ui`` is enabled in production only, with an enterprise rule and a
    20/80 default rollout.
    """
    repository = MemorySourceRepository()
    repository.add_environment(EnvironmentRecord(id="env-1", key="production", project_id="proj-1"))
    repository.add_environment(EnvironmentRecord(id="env-2", key="staging", project_id="proj-1"))
    repository.upsert_flag(
        FlagRecord(
            id="flag-1",
            key="new-ui",
            project_id="proj-1",
            flag_type=FlagType.BOOLEAN,
            variations=[
                VariationRecord(id="var-on", name="on", value=True, sort_order=0),
                VariationRecord(id="var-off", name="off", value=False, is_default=True, sort_order=1),
            ],
        )
    )
    repository.configure_flag(
        "env-1",
        FlagEnvironmentRecord(
            flag_id="flag-1",
            enabled=True,
            off_variation_id="var-off",
            default_rollout=RolloutRecord(
                variations=[
                    RolloutWeightRecord(variation_id="var-on", weight=20_000),
                    RolloutWeightRecord(variation_id="var-off", weight=80_000),
                ]
            ),
            targets=[
                TargetRecord(
                    id="target-enterprise",
                    target_type=TargetType.RULE,
                    sort_order=0,
                    variation_id="var-on",
                    conditions=[Condition("plan", RuleOperator.EQUALS, "enterprise")],
                ),
            ],
        ),
    )
    return repository


# -----------------------------------------------------------------------------
# Litestar Application Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def flagsync_config(source_repository: MemorySourceRepository) -> FlagSyncConfig:
    return FlagSyncConfig(backend="memory", source_repository=source_repository, idle_room_timeout=None)


@pytest.fixture
def flagsync_plugin(flagsync_config: FlagSyncConfig) -> FlagSyncPlugin:
    return FlagSyncPlugin(config=flagsync_config)


@pytest.fixture
def test_app(flagsync_plugin: FlagSyncPlugin) -> Litestar:
    """Create a Litestar application serving flag snapshots."""
    from litestar import Litestar

    return Litestar(route_handlers=[], plugins=[flagsync_plugin], debug=True)


@pytest.fixture
def test_client(test_app: Litestar) -> TestClient:
    from litestar.testing import TestClient

    return TestClient(app=test_app)
