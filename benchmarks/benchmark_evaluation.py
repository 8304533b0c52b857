"""Benchmarks for local evaluation and snapshot distribution.

Evaluation is a pure function of the snapshot and the context, so these
benchmarks call the engine directly; the distribution benchmarks measure
the encode and publish path a snapshot takes before it reaches clients.

Run with:
    pytest benchmarks/benchmark_evaluation.py --benchmark-only
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import TYPE_CHECKING

import pytest

from litestar_flagsync import EvaluationReason, RoomRegistry, bucket_for
from litestar_flagsync.serialization import decode_snapshot, encode_snapshot

if TYPE_CHECKING:
    from litestar_flagsync import EvaluationContext, EvaluationEngine, MemorySnapshotStorage, Snapshot


# -----------------------------------------------------------------------------
# Hashing
# -----------------------------------------------------------------------------


class TestBucketing:
    """Benchmarks for rollout bucketing."""

    @pytest.mark.benchmark(group="hashing")
    def test_bucket_for(self, benchmark) -> None:
        result = benchmark(bucket_for, "new-ui", "user-42")

        assert result == 96921

    @pytest.mark.benchmark(group="hashing")
    def test_bucket_for_long_key(self, benchmark) -> None:
        key = "user-" + "x" * 256

        result = benchmark(bucket_for, "new-ui", key, "seed")

        assert 0 <= result < 100_000


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------


class TestEvaluation:
    """Benchmarks for flag evaluation against a cached snapshot."""

    @pytest.mark.benchmark(group="evaluation")
    def test_rollout_flag(
        self,
        benchmark,
        engine: EvaluationEngine,
        small_snapshot: Snapshot,
        simple_context: EvaluationContext,
    ) -> None:
        result = benchmark(engine.evaluate, small_snapshot, "flag-0", simple_context, False)

        assert result.reason is EvaluationReason.DEFAULT

    @pytest.mark.benchmark(group="evaluation")
    def test_rules_fall_through(
        self,
        benchmark,
        engine: EvaluationEngine,
        ruled_snapshot: Snapshot,
        complex_context: EvaluationContext,
    ) -> None:
        """Benchmark the worst case: every rule is checked and none matches."""
        result = benchmark(engine.evaluate, ruled_snapshot, "flag-0", complex_context, False)

        assert result.reason is EvaluationReason.DEFAULT

    @pytest.mark.benchmark(group="evaluation")
    def test_segment_match(
        self,
        benchmark,
        engine: EvaluationEngine,
        segment_snapshot: Snapshot,
        complex_context: EvaluationContext,
    ) -> None:
        result = benchmark(engine.evaluate, segment_snapshot, "flag-0", complex_context, False)

        assert result.value is True
        assert result.matched_rule_id == "internal"

    @pytest.mark.benchmark(group="evaluation")
    def test_unknown_flag(
        self,
        benchmark,
        engine: EvaluationEngine,
        large_snapshot: Snapshot,
        simple_context: EvaluationContext,
    ) -> None:
        result = benchmark(engine.evaluate, large_snapshot, "ghost", simple_context, False)

        assert result.reason is EvaluationReason.ERROR

    @pytest.mark.benchmark(group="evaluation-batch")
    def test_evaluate_1000_flags(
        self,
        benchmark,
        engine: EvaluationEngine,
        large_snapshot: Snapshot,
        complex_context: EvaluationContext,
    ) -> None:
        """Benchmark evaluating every flag of a large snapshot once."""
        keys = list(large_snapshot.flags)

        def evaluate_all() -> int:
            return sum(1 for key in keys if engine.evaluate(large_snapshot, key, complex_context).value)

        enabled = benchmark(evaluate_all)

        assert 0 < enabled < len(keys)


# -----------------------------------------------------------------------------
# Distribution
# -----------------------------------------------------------------------------


class TestDistribution:
    """Benchmarks for the snapshot wire format and publish path."""

    @pytest.mark.benchmark(group="distribution")
    def test_encode_large_snapshot(self, benchmark, large_snapshot: Snapshot) -> None:
        payload = benchmark(encode_snapshot, large_snapshot)

        assert payload

    @pytest.mark.benchmark(group="distribution")
    def test_decode_large_snapshot(self, benchmark, large_snapshot: Snapshot) -> None:
        payload = encode_snapshot(large_snapshot)

        snapshot = benchmark(decode_snapshot, payload)

        assert len(snapshot.flags) == 1000

    @pytest.mark.benchmark(group="distribution")
    def test_publish_to_subscribers(self, benchmark, storage: MemorySnapshotStorage, small_snapshot: Snapshot) -> None:
        """Benchmark fanning a new version out to 100 subscribers."""
        loop = asyncio.new_event_loop()
        registry = RoomRegistry(storage, buffer_size=1_000_000)
        room = registry.get(small_snapshot.environment_id)
        for _ in range(100):
            loop.run_until_complete(room.subscribe())
        versions = iter(range(2, 10_000_000))

        def publish() -> int:
            snapshot = dataclasses.replace(small_snapshot, version=next(versions))
            return loop.run_until_complete(registry.publish(snapshot))

        try:
            delivered = benchmark(publish)
        finally:
            loop.run_until_complete(registry.close())
            loop.close()

        assert delivered == 100
