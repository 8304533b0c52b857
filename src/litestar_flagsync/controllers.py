"""HTTP routes of the distribution server.

All routes live under the configured prefix (``/api/v1`` by default):

- ``GET /snapshot/{environment_key}``: latest snapshot, conditional on
  ``If-None-Match`` or ``?version=``
- ``GET /stream/{environment_key}``: server-sent snapshot push channel
- ``POST /rooms/{environment_id}``: push an already built snapshot
- ``POST /publish/{environment_id}``: build and publish an environment
- ``POST /projects/{project_id}/publish``: publish every environment
- ``GET /preview/{flag_key}``: evaluate a flag across environments
- ``POST /telemetry/{project_id}``: ingest a batch of evaluation events
- ``GET /telemetry/{project_id}/stream``: live evaluation feed
- ``GET /health``: health report
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Any

from litestar import Controller, Request, Response, get, post
from litestar.enums import MediaType
from litestar.exceptions import NotFoundException, ValidationException
from litestar.response import ServerSentEvent
from litestar.response.sse import ServerSentEventMessage
from litestar.serialization import decode_json, encode_json
from litestar.status_codes import (
    HTTP_200_OK,
    HTTP_202_ACCEPTED,
    HTTP_304_NOT_MODIFIED,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from litestar_flagsync.context import EvaluationContext
from litestar_flagsync.exceptions import ConfigNotFoundError, SnapshotBuildError, TransportError
from litestar_flagsync.health import HealthStatus, health_check
from litestar_flagsync.preview import preview_flag
from litestar_flagsync.publisher import SnapshotPublisher
from litestar_flagsync.registry import RoomRegistry
from litestar_flagsync.room import DistributionRoom
from litestar_flagsync.serialization import encode_snapshot, snapshot_from_document
from litestar_flagsync.telemetry import EvaluationEvent, TelemetryHub

__all__ = ["FlagSyncController", "snapshot_events", "telemetry_events"]

logger = logging.getLogger(__name__)


async def snapshot_events(room: DistributionRoom) -> AsyncGenerator[ServerSentEventMessage, None]:
    """Subscribe to a room and stream its snapshots as ``snapshot`` events.

    The subscription starts with the first iteration, and the subscriber is
    removed from its room when the stream ends, whether the client
    disconnected or the room dropped it.
    """
    subscriber = await room.subscribe()
    try:
        async for snapshot in subscriber:
            yield ServerSentEventMessage(
                data=encode_snapshot(snapshot).decode(),
                event="snapshot",
                id=str(snapshot.version),
            )
    finally:
        room.unsubscribe(subscriber)


async def telemetry_events(hub: TelemetryHub, project_id: str) -> AsyncGenerator[ServerSentEventMessage, None]:
    observer = hub.subscribe(project_id)
    try:
        async for event in observer:
            yield ServerSentEventMessage(data=encode_json(event.to_dict()).decode(), event="evaluation")
    finally:
        hub.unsubscribe(observer)


def _split_ids(values: list[str]) -> list[str]:
    return [item.strip() for value in values for item in value.split(",") if item.strip()]


class FlagSyncController(Controller):
    """Snapshot distribution, publish, preview and telemetry routes.

    The plugin subclasses this controller with the configured path and the
    ``registry``, ``publisher`` and ``telemetry`` dependencies.
    """

    path = "/api/v1"
    tags = ["flagsync"]

    @staticmethod
    async def _room_for_key(registry: RoomRegistry, environment_key: str) -> DistributionRoom:
        try:
            return await registry.get_by_key(environment_key)
        except ConfigNotFoundError as exc:
            raise NotFoundException(detail=str(exc)) from exc

    @get("/snapshot/{environment_key:str}")
    async def get_snapshot(
        self,
        request: Request,
        registry: RoomRegistry,
        environment_key: str,
        version: int | None = None,
    ) -> Response[bytes]:
        if_none_match = request.headers.get("If-None-Match")
        room = await self._room_for_key(registry, environment_key)
        snapshot = await room.load()
        if snapshot is None:
            raise NotFoundException(detail=f"no snapshot published for environment '{environment_key}'")

        headers = {"ETag": snapshot.etag, "Cache-Control": "no-cache"}
        if if_none_match == snapshot.etag or (version is not None and version >= snapshot.version):
            return Response(content=b"", status_code=HTTP_304_NOT_MODIFIED, headers=headers)
        return Response(content=encode_snapshot(snapshot), media_type=MediaType.JSON, headers=headers)

    @get("/stream/{environment_key:str}")
    async def stream_snapshots(self, registry: RoomRegistry, environment_key: str) -> ServerSentEvent:
        room = await self._room_for_key(registry, environment_key)
        return ServerSentEvent(snapshot_events(room))

    @post("/rooms/{environment_id:str}", status_code=HTTP_200_OK)
    async def push_snapshot(self, registry: RoomRegistry, environment_id: str, data: dict[str, Any]) -> dict[str, Any]:
        try:
            snapshot = snapshot_from_document(data)
        except TransportError as exc:
            raise ValidationException(detail=str(exc)) from exc
        if snapshot.environment_id != environment_id:
            raise ValidationException(detail="snapshot environment does not match the room")

        delivered = await registry.publish(snapshot)
        current = registry.get(environment_id).snapshot
        return {
            "environment_id": environment_id,
            "version": current.version if current else snapshot.version,
            "delivered": delivered,
        }

    @post("/publish/{environment_id:str}", status_code=HTTP_200_OK)
    async def publish_environment(self, publisher: SnapshotPublisher, environment_id: str) -> dict[str, Any]:
        try:
            snapshot = await publisher.publish(environment_id)
        except ConfigNotFoundError as exc:
            raise NotFoundException(detail=str(exc)) from exc
        except SnapshotBuildError as exc:
            raise ValidationException(detail=str(exc)) from exc
        return {"environment_id": environment_id, "version": snapshot.version}

    @post("/projects/{project_id:str}/publish", status_code=HTTP_200_OK)
    async def publish_project(self, publisher: SnapshotPublisher, project_id: str) -> dict[str, Any]:
        report = await publisher.publish_all(project_id)
        return {"project_id": project_id, **report.to_dict()}

    @get("/preview/{flag_key:str}")
    async def preview(
        self,
        registry: RoomRegistry,
        flag_key: str,
        environment_ids: list[str],
        targeting_key: str | None = None,
        attributes: str | None = None,
    ) -> dict[str, Any]:
        parsed: Any = {}
        if attributes:
            try:
                parsed = decode_json(attributes)
            except Exception as exc:
                raise ValidationException(detail="attributes must be a JSON object") from exc
            if not isinstance(parsed, dict):
                raise ValidationException(detail="attributes must be a JSON object")

        context = EvaluationContext(targeting_key=targeting_key, attributes=parsed)
        results = await preview_flag(registry, flag_key, _split_ids(environment_ids), context)
        return {"flag_key": flag_key, "results": {env: result.to_dict() for env, result in results.items()}}

    @post("/telemetry/{project_id:str}", status_code=HTTP_202_ACCEPTED)
    async def ingest_telemetry(self, telemetry: TelemetryHub, project_id: str, data: dict[str, Any]) -> dict[str, Any]:
        raw_events = data.get("events")
        if not isinstance(raw_events, list):
            raise ValidationException(detail="'events' must be a list")

        events: list[EvaluationEvent] = []
        for item in raw_events:
            try:
                events.append(EvaluationEvent.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.debug("Dropping malformed telemetry event for project '%s'", project_id)
        accepted = telemetry.emit_batch(project_id, events)
        return {"accepted": accepted, "rejected": len(raw_events) - accepted}

    @get("/telemetry/{project_id:str}/stream")
    async def stream_telemetry(self, telemetry: TelemetryHub, project_id: str) -> ServerSentEvent:
        return ServerSentEvent(telemetry_events(telemetry, project_id))

    @get("/health")
    async def health(self, registry: RoomRegistry, telemetry: TelemetryHub) -> Response[dict[str, Any]]:
        result = await health_check(registry, telemetry)
        status_code = HTTP_503_SERVICE_UNAVAILABLE if result.status is HealthStatus.UNHEALTHY else HTTP_200_OK
        return Response(content=result.to_dict(), status_code=status_code)
