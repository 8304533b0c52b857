"""Segment resolution with a fixed recursion depth.

Rules reference segments by key; a segment's own conditions are evaluated
with segment references disabled. Limiting resolution to one level makes
reference cycles structurally impossible instead of detecting them at run
time.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from litestar_flagsync.operators import strict_equals

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from litestar_flagsync.context import EvaluationContext
    from litestar_flagsync.models.condition import Condition, IndividualEntry
    from litestar_flagsync.models.segment import Segment

__all__ = ["MAX_SEGMENT_DEPTH", "SegmentEvaluator"]

logger = logging.getLogger(__name__)

MAX_SEGMENT_DEPTH = 1
"""Number of segment levels a rule may traverse."""


class SegmentEvaluator:
    """Resolves segment membership against a snapshot's segment map.

    Args:
        segments: Segments keyed by segment key.
        match_conditions: Callable evaluating a condition list at a given
            depth; supplied by the evaluation engine.

    """

    def __init__(
        self,
        segments: Mapping[str, Segment],
        match_conditions: Callable[[Iterable[Condition], EvaluationContext, int], bool],
    ) -> None:
        self._segments = segments
        self._match_conditions = match_conditions

    def is_member(self, segment_key: str, context: EvaluationContext, depth: int = 0) -> bool:
        """Check whether a context belongs to a segment.

        Args:
            segment_key: Key of the referenced segment.
            context: The evaluation context.
            depth: Current resolution depth; references beyond
                :data:`MAX_SEGMENT_DEPTH` never match.

        Returns:
            Whether the context is a member.

        """
        if depth >= MAX_SEGMENT_DEPTH:
            logger.debug("Segment reference '%s' exceeds depth %d, treated as no match", segment_key, depth)
            return False

        segment = self._segments.get(segment_key)
        if segment is None:
            logger.debug("Unknown segment '%s' treated as no match", segment_key)
            return False

        if self._matches_individual(segment.excluded, context):
            return False
        if self._matches_individual(segment.included, context):
            return True
        return self._match_conditions(segment.conditions, context, depth + 1)

    @staticmethod
    def _matches_individual(entries: Iterable[IndividualEntry], context: EvaluationContext) -> bool:
        return any(strict_equals(context.get(entry.attribute), entry.value) for entry in entries)
