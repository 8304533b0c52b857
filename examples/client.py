"""Client SDK Example.

This example follows the ``production`` environment of the server example:
- Waiting for the first snapshot with a timeout
- Identifying a user and evaluating flags locally
- Reacting to pushed snapshots with an update listener
- Logging evaluations through the structured logging hook

To run this example, start the server first:
    uvicorn examples.server:app

Then in another terminal:
    python -m examples.client

Toggle the flag with ``curl -X POST http://localhost:8000/toggle`` and
watch the client pick up the new snapshot.
"""

from __future__ import annotations

import asyncio
import logging

from litestar_flagsync import (
    ClientOptions,
    EvaluationContext,
    FlagSyncClient,
    Snapshot,
    StaleOrUnreachableError,
)
from litestar_flagsync.contrib.logging import LoggingHook

logging.basicConfig(level=logging.INFO)


async def main() -> None:
    options = ClientOptions(
        base_url="http://localhost:8000/api/v1",
        environment_key="production",
        poll_interval=30.0,
    )
    hook = LoggingHook(evaluation_level="INFO")

    async with FlagSyncClient(options, telemetry=hook) as client:
        try:
            await client.ready(timeout=5)
        except StaleOrUnreachableError as exc:
            print(f"Server unreachable, serving fallbacks: {exc}")  # noqa: T201

        client.identify(EvaluationContext(targeting_key="user-1", attributes={"email": "ada@shop.example"}))

        def on_update(snapshot: Snapshot) -> None:
            hook.on_snapshot(snapshot)
            print(f"new-checkout is now {client.sync.get('new-checkout', False)}")  # noqa: T201

        client.on_update(on_update)

        for _ in range(60):
            enabled = await client.is_enabled("new-checkout")
            guest = await client.get("new-checkout", False, EvaluationContext(attributes={"email": "guest@mail.test"}))
            print(f"staff: {enabled}, guest: {guest}")  # noqa: T201
            await asyncio.sleep(5)


if __name__ == "__main__":
    asyncio.run(main())
