"""Evaluation result type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from litestar_flagsync.types import ErrorCode, EvaluationReason

__all__ = ["EvaluationResult"]


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Outcome of one flag evaluation.

    Attributes:
        flag_key: The evaluated flag key.
        value: The served value, or the caller's fallback on FALLBACK/ERROR.
        reason: Why this value was served.
        variation_id: Id of the served variation, if any.
        matched_rule_id: Id of the matching target rule for RULE_MATCH.
        error_code: Machine readable error for FALLBACK/ERROR results.
        error_detail: Human readable error detail.
        bucket: Rollout bucket in ``[0, 100000)`` when a rollout decided the value.
        schedule_step: Active gradual rollout step, if a schedule applied.
        snapshot_version: Version of the snapshot used for the evaluation.

    """

    flag_key: str
    value: Any
    reason: EvaluationReason
    variation_id: str | None = None
    matched_rule_id: str | None = None
    error_code: ErrorCode | None = None
    error_detail: str | None = None
    bucket: int | None = None
    schedule_step: int | None = None
    snapshot_version: int | None = None

    @property
    def is_error(self) -> bool:
        return self.reason in (EvaluationReason.ERROR, EvaluationReason.FALLBACK)

    def to_dict(self) -> dict[str, Any]:
        return {
            "flag_key": self.flag_key,
            "value": self.value,
            "reason": self.reason.value,
            "variation_id": self.variation_id,
            "matched_rule_id": self.matched_rule_id,
            "error_code": self.error_code.value if self.error_code else None,
            "error_detail": self.error_detail,
            "bucket": self.bucket,
            "schedule_step": self.schedule_step,
            "snapshot_version": self.snapshot_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvaluationResult:
        error_code = data.get("error_code")
        return cls(
            flag_key=data["flag_key"],
            value=data.get("value"),
            reason=EvaluationReason(data["reason"]),
            variation_id=data.get("variation_id"),
            matched_rule_id=data.get("matched_rule_id"),
            error_code=ErrorCode(error_code) if error_code else None,
            error_detail=data.get("error_detail"),
            bucket=data.get("bucket"),
            schedule_step=data.get("schedule_step"),
            snapshot_version=data.get("snapshot_version"),
        )
