"""HTTP transport of the client SDK."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from litestar_flagsync.exceptions import ConfigNotFoundError, TransportError
from litestar_flagsync.serialization import decode_snapshot

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from litestar_flagsync.client.config import ClientOptions
    from litestar_flagsync.models.snapshot import Snapshot

__all__ = [
    "HttpSnapshotTransport",
    "PushTransport",
    "SSEEvent",
    "SnapshotTransport",
    "iter_sse",
]

logger = logging.getLogger(__name__)


@runtime_checkable
class SnapshotTransport(Protocol):
    """Fetches snapshots on demand."""

    async def fetch(self, etag: str | None = None) -> Snapshot | None:
        """Fetch the latest snapshot.

        Args:
            etag: Entity tag of the cached snapshot.

        Returns:
            The snapshot, or ``None`` if it did not change.

        Raises:
            ConfigNotFoundError: If the environment is unknown.
            TransportError: On any other failure.

        """
        ...

    async def close(self) -> None: ...


@runtime_checkable
class PushTransport(Protocol):
    """Streams snapshots as they are published."""

    def stream(self) -> AsyncIterator[Snapshot]:
        """Open a push connection and yield snapshots until it drops."""
        ...


@dataclass
class SSEEvent:
    event: str = "message"
    data: str = ""
    id: str | None = None


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[SSEEvent]:
    """Parse a server-sent event stream from its lines."""
    event = "message"
    data: list[str] = []
    event_id: str | None = None
    async for line in lines:
        if not line:
            if data:
                yield SSEEvent(event=event, data="\n".join(data), id=event_id)
            event, data, event_id = "message", [], None
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        value = value.removeprefix(" ")
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
        elif name == "id":
            event_id = value


class HttpSnapshotTransport:
    """Snapshot fetch, push stream and telemetry upload over HTTP.

    Args:
        options: Client options.
        client: Optional pre-configured ``httpx.AsyncClient``; its base URL
            must point at the route prefix.

    """

    def __init__(self, options: ClientOptions, client: httpx.AsyncClient | None = None) -> None:
        self._environment_key = options.environment_key
        self._timeout = options.request_timeout
        self._headers = {"Authorization": f"Bearer {options.api_key}"} if options.api_key else {}
        self._client = client or httpx.AsyncClient(
            base_url=options.base_url,
            timeout=options.request_timeout,
        )
        self._owns_client = client is None

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.status_code == 404:
            raise ConfigNotFoundError("environment", self._environment_key)
        if response.is_error:
            raise TransportError(
                f"server responded with {response.status_code} for {response.request.url}",
                status_code=response.status_code,
            )

    async def fetch(self, etag: str | None = None) -> Snapshot | None:
        headers = dict(self._headers)
        if etag:
            headers["If-None-Match"] = etag
        try:
            response = await self._client.get(f"/snapshot/{self._environment_key}", headers=headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"snapshot fetch failed: {exc}") from exc

        if response.status_code == 304:
            return None
        self._raise_for_status(response)
        return decode_snapshot(response.content)

    async def stream(self) -> AsyncIterator[Snapshot]:
        timeout = httpx.Timeout(self._timeout, read=None)
        try:
            async with self._client.stream(
                "GET",
                f"/stream/{self._environment_key}",
                headers={**self._headers, "Accept": "text/event-stream"},
                timeout=timeout,
            ) as response:
                self._raise_for_status(response)
                async for event in iter_sse(response.aiter_lines()):
                    if event.event == "snapshot":
                        yield decode_snapshot(event.data)
        except httpx.HTTPError as exc:
            raise TransportError(f"push stream failed: {exc}") from exc

    async def send_events(self, project_id: str, events: list[dict[str, Any]]) -> None:
        try:
            response = await self._client.post(
                f"/telemetry/{project_id}", json={"events": events}, headers=self._headers
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"telemetry upload failed: {exc}") from exc
        if response.is_error:
            raise TransportError(
                f"telemetry upload rejected with {response.status_code}", status_code=response.status_code
            )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
