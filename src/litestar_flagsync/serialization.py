"""Wire format for snapshots.

Snapshots travel as JSON documents (see :meth:`Snapshot.to_dict`). Encoding
goes through Litestar's msgspec backed serializer so the server, the storage
layer and the client all produce byte-identical documents.
"""

from __future__ import annotations

from typing import Any

from litestar.serialization import decode_json, encode_json

from litestar_flagsync.exceptions import TransportError
from litestar_flagsync.models.snapshot import Snapshot

__all__ = ["decode_snapshot", "encode_snapshot", "snapshot_from_document"]


def encode_snapshot(snapshot: Snapshot) -> bytes:
    """Encode a snapshot to JSON bytes."""
    return encode_json(snapshot.to_dict())


def snapshot_from_document(document: Any) -> Snapshot:
    """Build a snapshot from an already decoded JSON document.

    Raises:
        TransportError: If the document is not a valid snapshot.

    """
    if not isinstance(document, dict):
        raise TransportError("snapshot document must be a JSON object")
    for section in ("flags", "rules", "segments"):
        if not isinstance(document.get(section) or {}, dict):
            raise TransportError(f"snapshot section '{section}' must be a JSON object")
    try:
        return Snapshot.from_dict(document)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise TransportError(f"invalid snapshot document: {exc}") from exc


def decode_snapshot(data: bytes | str) -> Snapshot:
    """Decode JSON bytes into a snapshot.

    Raises:
        TransportError: If the payload is not valid JSON or not a snapshot.

    """
    try:
        document = decode_json(data)
    except Exception as exc:
        raise TransportError(f"invalid snapshot payload: {exc}") from exc
    return snapshot_from_document(document)
