"""Percentage Rollout Example.

This example demonstrates gradual rollouts with litestar-flagsync:
- A fixed 25% rollout and how users keep their bucket across evaluations
- Bucketing by organisation instead of user, so whole teams switch together
- Reshuffling buckets with a seed
- A scheduled rollout that ramps 5% -> 25% -> 100% over time

Evaluation is a pure function of the snapshot, the context and the clock,
so no server is needed here.

To run this example:
    python -m examples.percentage_rollout
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from litestar_flagsync import (
    EvaluationContext,
    FlagType,
    Rollout,
    RolloutVariation,
    ScheduleStep,
    Snapshot,
    SnapshotFlag,
    TargetingRules,
    Variation,
    bucket_for,
    evaluate,
)

USERS = [
    EvaluationContext(targeting_key=f"user-{index}", attributes={"org": f"org-{index % 7}"}) for index in range(1000)
]
STARTED_AT = datetime(2026, 1, 1, tzinfo=UTC)


def split(percentage: int) -> tuple[RolloutVariation, ...]:
    """Weights serving ``on`` to ``percentage`` percent of traffic."""
    on = percentage * 1000
    return (RolloutVariation("on", on), RolloutVariation("off", 100_000 - on))


def rollout_flag(key: str, rollout: Rollout) -> SnapshotFlag:
    return SnapshotFlag(
        key=key,
        flag_type=FlagType.BOOLEAN,
        variations={
            "on": Variation(id="on", value=True),
            "off": Variation(id="off", value=False, is_default=True),
        },
        targeting=TargetingRules(enabled=True, off_variation_id="off", default_rollout=rollout),
    )


snapshot = Snapshot(
    environment_id="env-demo",
    environment_key="demo",
    version=1,
    flags={
        # Example 1: 25% of users
        "new-search": rollout_flag("new-search", Rollout(variations=split(25))),
        # Example 2: 25% of organisations; every member of an org gets the same answer
        "team-dashboards": rollout_flag("team-dashboards", Rollout(variations=split(25), bucket_by="org")),
        # Example 3: same 25%, different users thanks to the seed
        "new-search-reshuffled": rollout_flag("new-search-reshuffled", Rollout(variations=split(25), seed="v2")),
        # Example 4: ramp from 5% to 25% after a day, to everyone after a week
        "new-checkout": rollout_flag(
            "new-checkout",
            Rollout(
                variations=split(100),
                schedule=(
                    ScheduleStep(duration_minutes=24 * 60, variations=split(5)),
                    ScheduleStep(duration_minutes=6 * 24 * 60, variations=split(25)),
                    ScheduleStep(duration_minutes=0, variations=split(100)),
                ),
                started_at=STARTED_AT,
            ),
        ),
    },
)


def enabled_share(flag_key: str, now: datetime | None = None) -> float:
    enabled = sum(1 for context in USERS if evaluate(snapshot, flag_key, context, now=now).value is True)
    return enabled / len(USERS)


def main() -> None:
    print(f"new-search: {enabled_share('new-search'):.1%} of users")  # noqa: T201
    print(f"bucket of user-42: {bucket_for('new-search', 'user-42')}")  # noqa: T201

    first = {context.targeting_key for context in USERS if evaluate(snapshot, "new-search", context).value}
    second = {
        context.targeting_key for context in USERS if evaluate(snapshot, "new-search-reshuffled", context).value
    }
    print(f"overlap after reshuffling: {len(first & second)} of {len(first)} users")  # noqa: T201

    for org in sorted({context.attributes["org"] for context in USERS}):
        members = [context for context in USERS if context.attributes["org"] == org]
        values = {evaluate(snapshot, "team-dashboards", context).value for context in members}
        print(f"team-dashboards for {org}: {values}")  # noqa: T201

    for days in (0, 2, 10):
        now = STARTED_AT + timedelta(days=days)
        print(f"new-checkout on day {days}: {enabled_share('new-checkout', now):.1%} of users")  # noqa: T201


if __name__ == "__main__":
    main()
