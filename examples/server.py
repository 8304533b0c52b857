"""Distribution Server Example.

This example runs a flag distribution server with litestar-flagsync:
- Seeding an in-memory source repository with a project and two environments
- Publishing every environment on startup
- Republishing from a custom route after an edit
- Serving snapshots, the push stream and telemetry under ``/api/v1``

To run this example:
    uvicorn examples.server:app --reload

Then try:
    - curl http://localhost:8000/api/v1/snapshot/production
    - curl -N http://localhost:8000/api/v1/stream/production
    - curl -X POST http://localhost:8000/toggle
    - curl "http://localhost:8000/api/v1/preview/new-checkout?environment_ids=env-prod,env-staging&targeting_key=user-1"
"""

from __future__ import annotations

from typing import Any

from litestar import Litestar, post

from litestar_flagsync import (
    Condition,
    FlagSyncConfig,
    FlagSyncPlugin,
    FlagType,
    MemorySourceRepository,
    RuleOperator,
    SnapshotPublisher,
    TargetType,
)
from litestar_flagsync.sources import (
    EnvironmentRecord,
    FlagEnvironmentRecord,
    FlagRecord,
    RolloutRecord,
    RolloutWeightRecord,
    SegmentRecord,
    TargetRecord,
    VariationRecord,
)

PROJECT_ID = "shop"

repository = MemorySourceRepository()

production_checkout = FlagEnvironmentRecord(
    flag_id="flag-checkout",
    enabled=True,
    off_variation_id="var-off",
    default_rollout=RolloutRecord(
        variations=[
            RolloutWeightRecord(variation_id="var-on", weight=10_000),
            RolloutWeightRecord(variation_id="var-off", weight=90_000),
        ]
    ),
    targets=[
        TargetRecord(id="target-staff", target_type=TargetType.SEGMENT, segment_key="staff", variation_id="var-on"),
    ],
)


def seed_repository() -> None:
    """Create a shop project with a production and a staging environment."""
    repository.add_environment(EnvironmentRecord(id="env-prod", key="production", project_id=PROJECT_ID))
    repository.add_environment(EnvironmentRecord(id="env-staging", key="staging", project_id=PROJECT_ID))

    repository.upsert_segment(
        SegmentRecord(
            id="seg-staff",
            key="staff",
            project_id=PROJECT_ID,
            conditions=[Condition("email", RuleOperator.ENDS_WITH, "@shop.example")],
        )
    )

    repository.upsert_flag(
        FlagRecord(
            id="flag-checkout",
            key="new-checkout",
            project_id=PROJECT_ID,
            flag_type=FlagType.BOOLEAN,
            variations=[
                VariationRecord(id="var-on", name="on", value=True, sort_order=0),
                VariationRecord(id="var-off", name="off", value=False, is_default=True, sort_order=1),
            ],
        )
    )

    # Staff always see the new checkout, 10% of everyone else does
    repository.configure_flag("env-prod", production_checkout)

    # Staging serves it to everyone
    repository.configure_flag(
        "env-staging",
        FlagEnvironmentRecord(flag_id="flag-checkout", enabled=True, default_variation_id="var-on"),
    )


async def publish_all(app: Litestar) -> None:
    publisher: SnapshotPublisher = app.state.flagsync_publisher
    report = await publisher.publish_all(PROJECT_ID)
    print(f"Published {report.published}")  # noqa: T201


@post("/toggle")
async def toggle(flagsync_publisher: SnapshotPublisher) -> dict[str, Any]:
    """Flip ``new-checkout`` in production and push the new snapshot to every client."""
    production_checkout.enabled = not production_checkout.enabled
    snapshot = await flagsync_publisher.publish("env-prod")
    return {"flag_key": "new-checkout", "enabled": production_checkout.enabled, "version": snapshot.version}


seed_repository()

app = Litestar(
    route_handlers=[toggle],
    plugins=[FlagSyncPlugin(FlagSyncConfig(source_repository=repository))],
    on_startup=[publish_all],
)
