"""Client SDK: local evaluation against a synchronised snapshot."""

from __future__ import annotations

from litestar_flagsync.client.config import ClientOptions
from litestar_flagsync.client.events import TelemetryBuffer
from litestar_flagsync.client.sync import FlagSyncClient, SyncFlagAccessor
from litestar_flagsync.client.transport import (
    HttpSnapshotTransport,
    PushTransport,
    SnapshotTransport,
    SSEEvent,
    iter_sse,
)

__all__ = [
    "ClientOptions",
    "FlagSyncClient",
    "HttpSnapshotTransport",
    "PushTransport",
    "SSEEvent",
    "SnapshotTransport",
    "SyncFlagAccessor",
    "TelemetryBuffer",
    "iter_sse",
]
