"""Evaluation preview across environments."""

from __future__ import annotations

from typing import TYPE_CHECKING

from litestar_flagsync.context import EvaluationContext
from litestar_flagsync.engine import evaluate

if TYPE_CHECKING:
    from collections.abc import Iterable

    from litestar_flagsync.registry import RoomRegistry
    from litestar_flagsync.results import EvaluationResult

__all__ = ["preview_flag"]


async def preview_flag(
    registry: RoomRegistry,
    flag_key: str,
    environment_ids: Iterable[str],
    context: EvaluationContext | None = None,
) -> dict[str, EvaluationResult]:
    """Evaluate one flag in several environments under the same context.

    Uses the same engine as the SDKs, so the preview shows exactly what a
    client would be served. Environments without a published snapshot report
    a ``FALLBACK`` result.

    Args:
        registry: Room registry holding the published snapshots.
        flag_key: The flag to evaluate.
        environment_ids: Environments to evaluate in.
        context: Synthetic evaluation context.

    Returns:
        Results keyed by environment id.

    """
    context = context or EvaluationContext()
    results: dict[str, EvaluationResult] = {}
    for environment_id in environment_ids:
        snapshot = await registry.get(environment_id).load()
        results[environment_id] = evaluate(snapshot, flag_key, context)
    return results
