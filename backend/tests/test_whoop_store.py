"""
Local Store Tests

Validates the relational cache:
- Replace-on-conflict upserts, idempotence and batch atomicity
- Widen-only sync state
- Point, range and trend queries
"""

from datetime import date, timedelta
from typing import Any, Dict, List

import pytest
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from whoop_mcp.models.whoop import Cycle, Recovery, Sleep, Workout
from whoop_mcp.schemas.whoop import RecordKind, ScoreState, WhoopCycle, WhoopRecovery, WhoopSleep, WhoopWorkout

from tests.factories import NOW, make_cycle, make_recovery, make_sleep, make_workout


def cycles(*payloads) -> List[WhoopCycle]:
    return [WhoopCycle.model_validate(p) for p in payloads]


def recoveries(*payloads) -> List[WhoopRecovery]:
    return [WhoopRecovery.model_validate(p) for p in payloads]


def sleeps(*payloads) -> List[WhoopSleep]:
    return [WhoopSleep.model_validate(p) for p in payloads]


def workouts(*payloads) -> List[WhoopWorkout]:
    return [WhoopWorkout.model_validate(p) for p in payloads]


async def dump_table(store, model) -> List[Dict[str, Any]]:
    """All rows of a table as plain dicts, ordered by primary key."""
    pk = model.__table__.primary_key.columns.values()[0]
    async with store.session_factory() as db:
        result = await db.execute(select(model).order_by(pk))
        return [
            {column.key: getattr(row, column.key) for column in model.__table__.columns}
            for row in result.scalars().all()
        ]


def main_sleep(sleep_id: str, days_ago: float, **kwargs):
    start = NOW - timedelta(days=days_ago, hours=8)
    return make_sleep(sleep_id, start, start + timedelta(hours=8), **kwargs)


class TestUpsert:

    async def test_upsert_empty_batch(self, store):
        assert await store.upsert_batch(RecordKind.CYCLE, []) == 0

    async def test_upsert_all_kinds(self, store):
        await store.upsert_cycles(cycles(make_cycle(1, NOW - timedelta(hours=10))))
        await store.upsert_recoveries(recoveries(make_recovery(1, NOW - timedelta(hours=3))))
        await store.upsert_sleeps(sleeps(main_sleep("s1", 0)))
        await store.upsert_workouts(workouts(make_workout("w1", NOW - timedelta(hours=5), NOW - timedelta(hours=4))))

        recovery = (await dump_table(store, Recovery))[0]
        sleep = (await dump_table(store, Sleep))[0]
        workout = (await dump_table(store, Workout))[0]

        assert recovery["recovery_score"] == 72.0
        assert recovery["hrv_rmssd"] == 48.2
        assert sleep["total_in_bed_milli"] == 28_800_000
        assert sleep["sleep_needed_debt_milli"] == 1_200_000
        assert sleep["is_nap"] is False
        assert workout["sport_name"] == "running"
        assert workout["zone_three_milli"] == 1_200_000

    async def test_upsert_is_idempotent(self, store):
        batch = cycles(
            make_cycle(1, NOW - timedelta(days=2)),
            make_cycle(2, NOW - timedelta(days=1)),
        )

        await store.upsert_cycles(batch)
        once = await dump_table(store, Cycle)
        await store.upsert_cycles(batch)
        twice = await dump_table(store, Cycle)

        assert once == twice
        assert len(twice) == 2

    async def test_upsert_replaces_whole_row(self, store):
        start = NOW - timedelta(hours=6)
        await store.upsert_cycles(cycles(make_cycle(1, start, strain=9.0, kilojoule=5000.0)))

        await store.upsert_cycles(cycles(make_cycle(1, start, score_state="PENDING_SCORE")))

        row = (await dump_table(store, Cycle))[0]
        assert row["score_state"] == "PENDING_SCORE"
        assert row["strain"] is None
        assert row["kilojoule"] is None

    async def test_score_state_is_validated_and_stored_as_text(self, store):
        parsed = WhoopCycle.model_validate(make_cycle(1, NOW - timedelta(hours=6), score_state="UNSCORABLE"))
        assert parsed.score_state == ScoreState.UNSCORABLE
        assert type(parsed.score_state) is str

        await store.upsert_cycles([parsed])
        assert (await dump_table(store, Cycle))[0]["score_state"] == "UNSCORABLE"

        with pytest.raises(ValidationError):
            WhoopCycle.model_validate(make_cycle(2, NOW, score_state="BOGUS"))

    async def test_duplicate_key_in_batch_last_wins(self, store):
        start = NOW - timedelta(hours=6)

        written = await store.upsert_cycles(cycles(
            make_cycle(1, start, strain=5.0),
            make_cycle(1, start, strain=15.0),
        ))

        assert written == 1
        assert (await dump_table(store, Cycle))[0]["strain"] == 15.0

    async def test_failed_batch_commits_nothing(self, store):
        good = WhoopCycle.model_validate(make_cycle(1, NOW - timedelta(hours=6)))
        bad = WhoopCycle.model_construct(id=2, user_id=10129, start=None, score_state="SCORED")

        with pytest.raises(IntegrityError):
            await store.upsert_cycles([good, bad])

        assert await dump_table(store, Cycle) == []

    async def test_failed_batch_keeps_earlier_batches(self, store):
        await store.upsert_cycles(cycles(make_cycle(1, NOW - timedelta(days=1))))
        bad = WhoopCycle.model_construct(id=2, user_id=10129, start=None, score_state="SCORED")

        with pytest.raises(IntegrityError):
            await store.upsert_cycles([bad])

        assert [row["id"] for row in await dump_table(store, Cycle)] == [1]


class TestSyncState:

    async def test_initial_state_is_empty(self, store):
        state = await store.get_sync_state()

        assert state.last_sync_at is None
        assert state.oldest_synced_date is None
        assert state.newest_synced_date is None

    async def test_first_update_sets_range(self, store):
        state = await store.update_sync_state(date(2026, 3, 8), date(2026, 3, 15))

        assert state.oldest_synced_date == date(2026, 3, 8)
        assert state.newest_synced_date == date(2026, 3, 15)
        assert state.last_sync_at == NOW

    async def test_range_only_widens(self, store, clock):
        ranges = [
            (date(2026, 3, 8), date(2026, 3, 15)),
            (date(2025, 12, 15), date(2026, 3, 1)),
            (date(2026, 3, 10), date(2026, 3, 20)),
            (date(2026, 1, 1), date(2026, 2, 1)),
        ]
        for oldest, newest in ranges:
            clock.advance(timedelta(hours=2))
            await store.update_sync_state(oldest, newest)

        state = await store.get_sync_state()
        assert state.oldest_synced_date == min(r[0] for r in ranges)
        assert state.newest_synced_date == max(r[1] for r in ranges)
        assert state.last_sync_at == clock()

    async def test_last_sync_at_always_advances(self, store):
        later = NOW + timedelta(minutes=30)

        await store.update_sync_state(date(2026, 3, 8), date(2026, 3, 15))
        state = await store.update_sync_state(date(2026, 3, 9), date(2026, 3, 14), now=later)

        assert state.last_sync_at == later
        assert state.oldest_synced_date == date(2026, 3, 8)


class TestPointQueries:

    async def test_empty_store(self, store):
        assert await store.get_latest_cycle() is None
        assert await store.get_latest_recovery() is None
        assert await store.get_latest_sleep() is None

    async def test_latest_cycle_and_recovery(self, store):
        await store.upsert_cycles(cycles(
            make_cycle(1, NOW - timedelta(days=2)),
            make_cycle(3, NOW - timedelta(hours=5)),
            make_cycle(2, NOW - timedelta(days=1)),
        ))
        await store.upsert_recoveries(recoveries(
            make_recovery(1, NOW - timedelta(days=2), recovery_score=40.0),
            make_recovery(3, NOW - timedelta(hours=4), recovery_score=80.0),
        ))

        assert (await store.get_latest_cycle()).id == 3
        assert (await store.get_latest_recovery()).recovery_score == 80.0

    async def test_latest_sleep_skips_naps(self, store):
        nap_start = NOW - timedelta(hours=3)
        await store.upsert_sleeps(sleeps(
            main_sleep("main", 0),
            make_sleep("nap", nap_start, nap_start + timedelta(minutes=30), nap=True),
        ))

        latest = await store.get_latest_sleep()

        assert latest.id == "main"
        assert latest.start_time.tzinfo is not None


class TestRangeQueries:

    async def test_date_bounds_are_inclusive_and_descending(self, store):
        await store.upsert_cycles(cycles(
            make_cycle(1, NOW.replace(day=10, hour=0)),
            make_cycle(2, NOW.replace(day=12, hour=23, minute=59)),
            make_cycle(3, NOW.replace(day=11, hour=8)),
            make_cycle(4, NOW.replace(day=13, hour=0)),
            make_cycle(5, NOW.replace(day=9, hour=23)),
        ))

        rows = await store.get_cycles_by_date_range(date(2026, 3, 10), date(2026, 3, 12))

        assert [row.id for row in rows] == [2, 3, 1]

    async def test_sleep_range_nap_toggle(self, store):
        nap_start = NOW - timedelta(days=1, hours=-4)
        await store.upsert_sleeps(sleeps(
            main_sleep("main", 1),
            make_sleep("nap", nap_start, nap_start + timedelta(minutes=40), nap=True),
        ))
        start, end = NOW - timedelta(days=3), NOW

        without_naps = await store.get_sleeps_by_date_range(start, end)
        with_naps = await store.get_sleeps_by_date_range(start, end, include_naps=True)

        assert [s.id for s in without_naps] == ["main"]
        assert [s.id for s in with_naps] == ["nap", "main"]

    async def test_recovery_and_workout_ranges(self, store):
        await store.upsert_recoveries(recoveries(
            make_recovery(1, NOW - timedelta(days=5)),
            make_recovery(2, NOW - timedelta(days=1)),
        ))
        await store.upsert_workouts(workouts(
            make_workout("w1", NOW - timedelta(days=4), NOW - timedelta(days=4) + timedelta(hours=1)),
            make_workout("w2", NOW - timedelta(days=1), NOW - timedelta(days=1) + timedelta(hours=1)),
        ))

        recent = await store.get_recoveries_by_date_range(NOW - timedelta(days=2), NOW)
        all_workouts = await store.get_workouts_by_date_range(date(2026, 3, 1), date(2026, 3, 15))

        assert [r.cycle_id for r in recent] == [2]
        assert [w.id for w in all_workouts] == ["w2", "w1"]


class TestTrends:

    async def test_sleep_hours_computed_from_stage_summary(self, store):
        """7.5h = (8h in bed - 30min awake)."""
        await store.upsert_sleeps(sleeps(
            main_sleep("s1", 1, in_bed_milli=28_800_000, awake_milli=1_800_000),
        ))

        trends = await store.get_sleep_trends(7)

        assert len(trends) == 1
        assert trends[0].total_sleep_hours == 7.5
        assert trends[0].performance == 91.0
        assert trends[0].efficiency == 93.8

    async def test_sleep_trends_exclude_naps_and_unscored(self, store):
        nap_start = NOW - timedelta(days=1)
        await store.upsert_sleeps(sleeps(
            main_sleep("scored", 1),
            main_sleep("unscored", 2, performance=None),
            make_sleep("nap", nap_start, nap_start + timedelta(minutes=30), nap=True),
        ))

        trends = await store.get_sleep_trends(7)

        assert len(trends) == 1
        assert trends[0].date == (NOW - timedelta(days=1, hours=8)).date()

    async def test_recovery_trends_window_and_order(self, store):
        await store.upsert_recoveries(recoveries(
            make_recovery(1, NOW - timedelta(days=20), recovery_score=50.0),
            make_recovery(2, NOW - timedelta(days=6), recovery_score=60.0),
            make_recovery(3, NOW - timedelta(days=1), recovery_score=70.0),
            make_recovery(4, NOW - timedelta(days=3), recovery_score=None),
            make_recovery(5, NOW + timedelta(hours=2), recovery_score=90.0),
            make_recovery(6, NOW - timedelta(days=7), recovery_score=30.0),
        ))

        trends = await store.get_recovery_trends(7)

        assert [t.recovery_score for t in trends] == [70.0, 60.0, 30.0]
        assert trends[0].hrv == 48.2
        assert trends[0].rhr == 52.0

    async def test_strain_trends_calories_and_nulls(self, store):
        await store.upsert_cycles(cycles(
            make_cycle(1, NOW - timedelta(days=2), strain=14.2, kilojoule=8368.0),
            make_cycle(2, NOW - timedelta(days=1), strain=None),
            make_cycle(3, NOW - timedelta(hours=6), strain=6.1, kilojoule=None),
            make_cycle(4, NOW - timedelta(days=30), strain=20.0),
        ))

        trends = await store.get_strain_trends(14)

        assert [t.strain for t in trends] == [6.1, 14.2]
        assert trends[0].calories is None
        assert trends[1].calories == 2000

    async def test_trends_on_empty_store(self, store):
        assert await store.get_recovery_trends(14) == []
        assert await store.get_sleep_trends(14) == []
        assert await store.get_strain_trends(14) == []
