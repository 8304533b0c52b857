"""Deterministic bucketing hash shared by every SDK implementation.

The hash is a 32-bit multiplicative string hash (multiplier 31) computed over
UTF-16 code units, reinterpreted as a signed 32-bit integer and made
absolute::

    h = 0
    for unit in utf16_code_units(text):
        h = (h * 31 + unit) mod 2**32
    h = abs(signed32(h))

Buckets are ``h mod 100000``, so rollout weights are expressed in basis points
of 0.001%. The same algorithm must be reproduced bit for bit on every
platform; ``vectors/bucketing.json`` holds the conformance vectors every
implementation is tested against.
"""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any

__all__ = [
    "BUCKET_SCALE",
    "bucket_for",
    "bucketing_input",
    "hash_string",
    "load_conformance_vectors",
]

BUCKET_SCALE = 100_000
"""Number of buckets; rollout weights sum to this value."""

_UINT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000
_UINT32_RANGE = 0x100000000


def _utf16_code_units(text: str) -> list[int]:
    data = text.encode("utf-16-le", "surrogatepass")
    return [data[i] | (data[i + 1] << 8) for i in range(0, len(data), 2)]


def hash_string(text: str) -> int:
    """Hash a string into a non-negative integer in ``[0, 2**31]``.

    Args:
        text: Input string.

    Returns:
        The absolute value of the signed 32-bit hash.

    """
    h = 0
    for unit in _utf16_code_units(text):
        h = (h * 31 + unit) & _UINT32_MASK
    if h & _INT32_SIGN:
        h -= _UINT32_RANGE
    return abs(h)


def bucketing_input(flag_key: str, bucketing_key: str, seed: str | None = None) -> str:
    """Build the string hashed for a rollout decision."""
    if seed:
        return f"{flag_key}:{seed}:{bucketing_key}"
    return f"{flag_key}:{bucketing_key}"


def bucket_for(flag_key: str, bucketing_key: str, seed: str | None = None) -> int:
    """Map a (flag, bucketing key) pair to a bucket in ``[0, BUCKET_SCALE)``.

    The bucket depends only on its arguments, never on the rest of the
    snapshot, so reordering unrelated rules cannot move a user between
    buckets.
    """
    return hash_string(bucketing_input(flag_key, bucketing_key, seed)) % BUCKET_SCALE


@lru_cache(maxsize=1)
def load_conformance_vectors() -> dict[str, Any]:
    """Load the shared hash conformance vectors shipped with the package."""
    source = resources.files("litestar_flagsync").joinpath("vectors", "bucketing.json")
    return json.loads(source.read_text(encoding="utf-8"))
