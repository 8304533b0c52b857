"""Evaluation engine for feature flags.

The engine is a pure function of ``(snapshot, flag_key, context)``: it does no
I/O, holds no mutable state and never raises. Every failure is reported
through the result's ``reason`` and ``error_code`` with the caller's fallback
as the value.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from litestar_flagsync.context import EvaluationContext
from litestar_flagsync.exceptions import MalformedConditionError
from litestar_flagsync.hashing import bucket_for
from litestar_flagsync.models.base import thaw_value
from litestar_flagsync.operators import evaluate_operator
from litestar_flagsync.results import EvaluationResult
from litestar_flagsync.segment_evaluator import SegmentEvaluator
from litestar_flagsync.types import ErrorCode, EvaluationReason, RuleOperator

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from litestar_flagsync.models.condition import Condition
    from litestar_flagsync.models.flag import SnapshotFlag
    from litestar_flagsync.models.rollout import Rollout
    from litestar_flagsync.models.segment import Segment
    from litestar_flagsync.models.snapshot import Snapshot

__all__ = ["EvaluationEngine", "evaluate"]

logger = logging.getLogger(__name__)


class _Selection:
    __slots__ = ("bucket", "schedule_step", "variation_id")

    def __init__(self, variation_id: str, bucket: int | None = None, schedule_step: int | None = None) -> None:
        self.variation_id = variation_id
        self.bucket = bucket
        self.schedule_step = schedule_step


def _stringify(value: Any) -> str:
    """Render a bucketing attribute the same way on every platform."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class EvaluationEngine:
    """Evaluates flags from a snapshot.

    Evaluation order:

    1. No snapshot yet -> fallback, reason ``FALLBACK``.
    2. Unknown flag -> fallback, reason ``ERROR``.
    3. Flag disabled -> off variation, reason ``OFF``.
    4. First target rule whose conditions all hold -> its fixed variation or
       its rollout, reason ``RULE_MATCH``.
    5. Default rollout if set, else the default variation, reason ``DEFAULT``.

    Args:
        clock: Returns the current time; only consulted by gradual rollout
            schedules.

    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))

    def evaluate(
        self,
        snapshot: Snapshot | None,
        flag_key: str,
        context: EvaluationContext | None = None,
        fallback: Any = None,
        *,
        now: datetime | None = None,
    ) -> EvaluationResult:
        """Evaluate a flag.

        Args:
            snapshot: The snapshot to evaluate against, or ``None`` when no
                snapshot has been synchronised yet.
            flag_key: The flag key.
            context: Evaluation context; an empty anonymous context if omitted.
            fallback: Value returned on FALLBACK and ERROR results.
            now: Evaluation time for gradual rollout schedules.

        Returns:
            The evaluation result. Never raises.

        """
        if snapshot is None:
            return EvaluationResult(
                flag_key=flag_key,
                value=fallback,
                reason=EvaluationReason.FALLBACK,
                error_code=ErrorCode.NOT_READY,
                error_detail="no snapshot synchronised yet",
            )

        try:
            return self._evaluate(snapshot, flag_key, context or EvaluationContext(), fallback, now)
        except Exception as exc:
            logger.exception("Unexpected error evaluating flag '%s'", flag_key)
            return EvaluationResult(
                flag_key=flag_key,
                value=fallback,
                reason=EvaluationReason.ERROR,
                error_code=ErrorCode.GENERAL_ERROR,
                error_detail=str(exc),
                snapshot_version=snapshot.version,
            )

    def _evaluate(
        self,
        snapshot: Snapshot,
        flag_key: str,
        context: EvaluationContext,
        fallback: Any,
        now: datetime | None,
    ) -> EvaluationResult:
        flag = snapshot.get_flag(flag_key)
        if flag is None:
            return self._error(flag_key, fallback, ErrorCode.FLAG_NOT_FOUND, "unknown flag", snapshot.version)

        targeting = flag.targeting
        if not targeting.enabled:
            return self._serve(flag, _Selection(targeting.off_variation_id), EvaluationReason.OFF, fallback, snapshot)

        segments = SegmentEvaluator(snapshot.segments, self._matches_at_depth(snapshot.segments))
        for target in targeting.targets:
            if not self._all_hold(target.conditions, context, segments, 0):
                continue

            selection: _Selection | None = None
            if target.rollout is not None:
                selection = self._select_from_rollout(flag.key, target.rollout, context, now)
            elif target.variation_id is not None:
                selection = _Selection(target.variation_id)

            if selection is None:
                logger.debug("Rule '%s' of flag '%s' matched without an outcome", target.id, flag.key)
                continue
            return self._serve(flag, selection, EvaluationReason.RULE_MATCH, fallback, snapshot, target.id)

        if targeting.default_rollout is not None:
            selection = self._select_from_rollout(flag.key, targeting.default_rollout, context, now)
        elif targeting.default_variation_id is not None:
            selection = _Selection(targeting.default_variation_id)
        else:
            selection = None

        if selection is None:
            return self._error(
                flag_key, fallback, ErrorCode.VARIATION_NOT_FOUND, "flag has no default variation", snapshot.version
            )
        return self._serve(flag, selection, EvaluationReason.DEFAULT, fallback, snapshot)

    def _serve(
        self,
        flag: SnapshotFlag,
        selection: _Selection,
        reason: EvaluationReason,
        fallback: Any,
        snapshot: Snapshot,
        matched_rule_id: str | None = None,
    ) -> EvaluationResult:
        variation = flag.get_variation(selection.variation_id)
        if variation is None:
            return self._error(
                flag.key,
                fallback,
                ErrorCode.VARIATION_NOT_FOUND,
                f"variation '{selection.variation_id}' not found",
                snapshot.version,
            )
        return EvaluationResult(
            flag_key=flag.key,
            value=thaw_value(variation.value),
            reason=reason,
            variation_id=variation.id,
            matched_rule_id=matched_rule_id,
            bucket=selection.bucket,
            schedule_step=selection.schedule_step,
            snapshot_version=snapshot.version,
        )

    @staticmethod
    def _error(flag_key: str, fallback: Any, code: ErrorCode, detail: str, version: int | None) -> EvaluationResult:
        return EvaluationResult(
            flag_key=flag_key,
            value=fallback,
            reason=EvaluationReason.ERROR,
            error_code=code,
            error_detail=detail,
            snapshot_version=version,
        )

    # -------------------------------------------------------------------------
    # Bucketing
    # -------------------------------------------------------------------------
    def _select_from_rollout(
        self,
        flag_key: str,
        rollout: Rollout,
        context: EvaluationContext,
        now: datetime | None,
    ) -> _Selection | None:
        variations, step = rollout.active_variations(now or self._clock())
        if not variations:
            return None

        bucket = bucket_for(flag_key, self._bucketing_key(rollout, context), rollout.seed)
        cumulative = 0
        chosen = variations[-1]
        for candidate in variations:
            cumulative += candidate.weight
            if bucket < cumulative:
                chosen = candidate
                break

        return _Selection(chosen.variation_id, bucket=bucket, schedule_step=step if step >= 0 else None)

    @staticmethod
    def _bucketing_key(rollout: Rollout, context: EvaluationContext) -> str:
        if rollout.bucket_by:
            value = context.get(rollout.bucket_by)
            if value is not None:
                return _stringify(value)
            return context.anonymous_key
        return context.bucketing_key

    # -------------------------------------------------------------------------
    # Conditions
    # -------------------------------------------------------------------------
    def _matches_at_depth(
        self, segments: Mapping[str, Segment]
    ) -> Callable[[Iterable[Condition], EvaluationContext, int], bool]:
        def match(conditions: Iterable[Condition], context: EvaluationContext, depth: int) -> bool:
            return self._all_hold(conditions, context, evaluator, depth)

        evaluator = SegmentEvaluator(segments, match)
        return match

    def _all_hold(
        self,
        conditions: Iterable[Condition],
        context: EvaluationContext,
        segments: SegmentEvaluator,
        depth: int,
    ) -> bool:
        return all(self._evaluate_condition(condition, context, segments, depth) for condition in conditions)

    def _evaluate_condition(
        self,
        condition: Condition,
        context: EvaluationContext,
        segments: SegmentEvaluator,
        depth: int,
    ) -> bool:
        if condition.is_segment_ref:
            if not isinstance(condition.value, str):
                return False
            member = segments.is_member(condition.value, context, depth)
            return member if condition.operator is RuleOperator.IN_SEGMENT else not member

        try:
            return evaluate_operator(condition.operator, context.get(condition.attribute), condition.value)
        except MalformedConditionError as exc:
            logger.debug("Condition on '%s' treated as no match: %s", condition.attribute, exc)
            return False


_default_engine = EvaluationEngine()


def evaluate(
    snapshot: Snapshot | None,
    flag_key: str,
    context: EvaluationContext | None = None,
    fallback: Any = None,
    *,
    now: datetime | None = None,
) -> EvaluationResult:
    """Evaluate a flag with a shared, stateless engine."""
    return _default_engine.evaluate(snapshot, flag_key, context, fallback, now=now)

