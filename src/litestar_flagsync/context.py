"""Evaluation context for feature flag targeting."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any
from uuid import uuid4

__all__ = ["EvaluationContext"]

_MISSING = object()


def _anonymous_key() -> str:
    return f"anonymous-{uuid4().hex}"


@dataclass(frozen=True, slots=True)
class EvaluationContext:
    """Caller supplied attributes for one evaluation.

    The context is immutable. ``targeting_key`` is the stable bucketing key
    used for percentage rollouts (typically a user id). When it is missing the
    context carries a random anonymous key instead, so rollouts are stable for
    the lifetime of one context object but not sticky across contexts.

    Attributes may be flat (``{"plan": "pro"}``) or grouped by kind
    (``{"user": {"plan": "pro"}}``); grouped attributes are addressed with a
    dotted path such as ``"user.plan"``.

    Attributes:
        targeting_key: Stable key used for bucketing.
        attributes: Attribute map matched by targeting conditions.

    Example:
        >>> context = EvaluationContext(targeting_key="user-42", attributes={"plan": "enterprise"})
        >>> context.get("plan")
        'enterprise'

    """

    targeting_key: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    anonymous_key: str = field(default_factory=_anonymous_key, compare=False, repr=False)

    @property
    def bucketing_key(self) -> str:
        """Key hashed for rollouts: the targeting key or the anonymous key."""
        if self.targeting_key:
            return self.targeting_key
        return self.anonymous_key

    @property
    def is_anonymous(self) -> bool:
        return not self.targeting_key

    def get(self, attribute: str, default: Any = None) -> Any:
        """Look up an attribute value.

        ``targeting_key`` and ``key`` resolve to the targeting key. Exact
        attribute names win over dotted paths.

        Args:
            attribute: Attribute name or dotted path.
            default: Value returned when the attribute is missing.

        Returns:
            The attribute value, or ``default``.

        """
        if attribute in ("targeting_key", "key"):
            if self.targeting_key is not None:
                return self.targeting_key
            return self.attributes.get(attribute, default)

        if attribute in self.attributes:
            return self.attributes[attribute]

        if "." in attribute:
            current: Any = self.attributes
            for part in attribute.split("."):
                if not isinstance(current, dict):
                    return default
                current = current.get(part, _MISSING)
                if current is _MISSING:
                    return default
            return current

        return default

    def merge(self, other: EvaluationContext | None) -> EvaluationContext:
        """Merge another context on top of this one.

        ``other`` takes precedence. Grouped attributes (dict values) are merged
        one level deep so a per-call ``{"user": {"plan": ...}}`` does not wipe
        out an identified ``{"user": {"id": ...}}``.

        Args:
            other: Context whose values override this one.

        Returns:
            A new merged context.

        """
        if other is None:
            return self

        attributes = dict(self.attributes)
        for name, value in other.attributes.items():
            existing = attributes.get(name)
            if isinstance(existing, dict) and isinstance(value, dict):
                attributes[name] = {**existing, **value}
            else:
                attributes[name] = value

        return EvaluationContext(
            targeting_key=other.targeting_key or self.targeting_key,
            attributes=attributes,
            anonymous_key=self.anonymous_key,
        )

    def with_targeting_key(self, targeting_key: str | None) -> EvaluationContext:
        return replace(self, targeting_key=targeting_key)

    def with_attributes(self, **attributes: Any) -> EvaluationContext:
        return replace(self, attributes={**self.attributes, **attributes})

    def to_dict(self) -> dict[str, Any]:
        return {"targeting_key": self.targeting_key, "attributes": dict(self.attributes)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvaluationContext:
        return cls(
            targeting_key=data.get("targeting_key"),
            attributes=dict(data.get("attributes") or {}),
        )
