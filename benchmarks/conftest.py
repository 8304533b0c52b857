"""Benchmark fixtures for litestar-flagsync performance testing.

This module provides snapshots of various sizes and contexts for
benchmarking local evaluation and the distribution path.
"""

from __future__ import annotations

import pytest

from litestar_flagsync import (
    Condition,
    EvaluationContext,
    EvaluationEngine,
    FlagType,
    MemorySnapshotStorage,
    Rollout,
    RolloutVariation,
    RuleOperator,
    Segment,
    Snapshot,
    SnapshotFlag,
    TargetingRules,
    TargetRule,
    Variation,
)

BOOLEAN_VARIATIONS = {
    "on": Variation(id="on", value=True),
    "off": Variation(id="off", value=False, is_default=True),
}


def rollout_flag(key: str, rules: int = 0) -> SnapshotFlag:
    """A boolean flag with ``rules`` non-matching rules in front of a 50/50 rollout."""
    targets = tuple(
        TargetRule(
            id=f"rule-{index}",
            priority=index,
            conditions=(
                Condition("country", RuleOperator.IN, ["FR", "DE"]),
                Condition("age", RuleOperator.GREATER_THAN, 65),
            ),
            variation_id="on",
        )
        for index in range(rules)
    )
    return SnapshotFlag(
        key=key,
        flag_type=FlagType.BOOLEAN,
        variations=BOOLEAN_VARIATIONS,
        targeting=TargetingRules(
            enabled=True,
            off_variation_id="off",
            targets=targets,
            default_rollout=Rollout(variations=(RolloutVariation("on", 50_000), RolloutVariation("off", 50_000))),
        ),
    )


def make_snapshot(
    flag_count: int, rules: int = 0, version: int = 1, flags: dict[str, SnapshotFlag] | None = None
) -> Snapshot:
    if flags is None:
        flags = {f"flag-{index}": rollout_flag(f"flag-{index}", rules) for index in range(flag_count)}
    return Snapshot(
        environment_id="env-bench",
        environment_key="bench",
        project_id="proj-bench",
        version=version,
        flags=flags,
        segments={
            "internal": Segment(
                key="internal", conditions=(Condition("email", RuleOperator.ENDS_WITH, "@example.com"),)
            )
        },
    )


# -----------------------------------------------------------------------------
# Engine Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def engine() -> EvaluationEngine:
    """Create an evaluation engine for benchmarking."""
    return EvaluationEngine()


@pytest.fixture
def storage() -> MemorySnapshotStorage:
    return MemorySnapshotStorage()


# -----------------------------------------------------------------------------
# Snapshot Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def small_snapshot() -> Snapshot:
    """A snapshot with a single rollout flag."""
    return make_snapshot(1)


@pytest.fixture
def ruled_snapshot() -> Snapshot:
    """A snapshot whose flag has ten rules that never match."""
    return make_snapshot(1, rules=10)


@pytest.fixture
def large_snapshot() -> Snapshot:
    """A snapshot with 1000 flags."""
    return make_snapshot(1000)


@pytest.fixture
def segment_snapshot() -> Snapshot:
    flag = SnapshotFlag(
        key="flag-0",
        flag_type=FlagType.BOOLEAN,
        variations=BOOLEAN_VARIATIONS,
        targeting=TargetingRules(
            enabled=True,
            off_variation_id="off",
            default_variation_id="off",
            targets=(
                TargetRule(id="internal", priority=0, conditions=(Condition.segment("internal"),), variation_id="on"),
            ),
        ),
    )
    return make_snapshot(0, flags={"flag-0": flag})


# -----------------------------------------------------------------------------
# Context Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def simple_context() -> EvaluationContext:
    return EvaluationContext(targeting_key="user-42")


@pytest.fixture
def complex_context() -> EvaluationContext:
    """A context with enough attributes to exercise every rule condition."""
    return EvaluationContext(
        targeting_key="user-42",
        attributes={
            "country": "US",
            "age": 30,
            "plan": "premium",
            "email": "someone@example.com",
            "organization": {"id": "acme", "tier": "gold"},
        },
    )
