"""
Sync Engine Tests

Validates the staleness policy and sync execution:
- full / quick / skip decision table
- Window boundaries, counts and sync-state bookkeeping
- Failure propagation and single-flight smart sync
"""

import asyncio
from datetime import date, timedelta

import pytest

from whoop_mcp.integrations.whoop.client import WhoopAPIError, WhoopNotAuthenticatedError
from whoop_mcp.schemas.whoop import RecordKind
from whoop_mcp.services.whoop_sync import decide_sync_action

from tests.factories import NOW, seed_upstream


@pytest.fixture
async def sync_services(authenticated, whoop_api):
    await authenticated.load_tokens()
    seed_upstream(whoop_api)
    return authenticated


class TestDecideSyncAction:

    def test_never_synced_is_full(self):
        assert decide_sync_action(None, NOW) == "full"

    @pytest.mark.parametrize("age, expected", [
        (timedelta(0), "skip"),
        (timedelta(minutes=30), "skip"),
        (timedelta(minutes=59, seconds=59), "skip"),
        (timedelta(hours=1), "quick"),
        (timedelta(hours=2), "quick"),
        (timedelta(days=30), "quick"),
    ])
    def test_staleness_threshold(self, age, expected):
        assert decide_sync_action(NOW - age, NOW) == expected

    def test_naive_timestamp_is_treated_as_utc(self):
        naive = (NOW - timedelta(minutes=10)).replace(tzinfo=None)
        assert decide_sync_action(naive, NOW) == "skip"


class TestSmartSync:

    async def test_empty_store_runs_full_sync(self, sync_services, whoop_api):
        result = await sync_services.sync.smart_sync()

        assert result.type == "full"
        assert result.stats.cycles == 2
        for kind in RecordKind:
            requests = whoop_api.collection_requests(kind)
            assert len(requests) == 1
            assert requests[0].url.params["start"] == "2025-12-15T12:00:00.000Z"
            assert requests[0].url.params["end"] == "2026-03-15T12:00:00.000Z"

        latest = await sync_services.store.get_latest_recovery()
        assert latest.cycle_id == 2
        assert latest.recovery_score == 81.0

    async def test_recent_sync_is_skipped(self, sync_services, whoop_api):
        await sync_services.store.update_sync_state(
            date(2026, 3, 1), date(2026, 3, 15), now=NOW - timedelta(minutes=30)
        )
        whoop_api.requests.clear()

        result = await sync_services.sync.smart_sync()

        assert result.type == "skip"
        assert result.stats is None
        assert whoop_api.requests == []
        assert await sync_services.store.get_latest_cycle() is None
        state = await sync_services.store.get_sync_state()
        assert state.last_sync_at == NOW - timedelta(minutes=30)

    async def test_stale_sync_runs_quick_sync(self, sync_services, whoop_api):
        await sync_services.store.update_sync_state(
            date(2026, 1, 1), date(2026, 3, 15), now=NOW - timedelta(hours=2)
        )

        result = await sync_services.sync.smart_sync()

        assert result.type == "quick"
        for kind in RecordKind:
            params = whoop_api.collection_requests(kind)[0].url.params
            assert params["start"] == "2026-03-08T12:00:00.000Z"
            assert params["end"] == "2026-03-15T12:00:00.000Z"

        state = await sync_services.store.get_sync_state()
        assert state.last_sync_at == NOW
        assert state.oldest_synced_date == date(2026, 1, 1)

    async def test_concurrent_smart_syncs_fetch_once(self, sync_services, whoop_api):
        results = await asyncio.gather(
            sync_services.sync.smart_sync(),
            sync_services.sync.smart_sync(),
        )

        assert sorted(r.type for r in results) == ["full", "skip"]
        for kind in RecordKind:
            assert len(whoop_api.collection_requests(kind)) == 1


class TestSyncWindow:

    async def test_counts_and_sync_state(self, sync_services):
        stats = await sync_services.sync.sync_window(7)

        assert stats.model_dump() == {"cycles": 2, "recoveries": 2, "sleeps": 2, "workouts": 1}

        state = await sync_services.store.get_sync_state()
        assert state.oldest_synced_date == date(2026, 3, 8)
        assert state.newest_synced_date == date(2026, 3, 15)
        assert state.last_sync_at == NOW

    async def test_empty_resource_does_not_block_others(self, sync_services, whoop_api):
        whoop_api.set_records(RecordKind.CYCLE, [])
        whoop_api.set_records(RecordKind.WORKOUT, [])

        stats = await sync_services.sync.quick_sync()

        assert stats.cycles == 0
        assert stats.recoveries == 2
        assert (await sync_services.store.get_latest_sleep()).id == "s2"

    async def test_resync_is_idempotent(self, sync_services, clock):
        await sync_services.sync.quick_sync()
        first = await sync_services.store.get_cycles_by_date_range(NOW - timedelta(days=7), NOW)

        clock.advance(timedelta(minutes=1))
        await sync_services.sync.quick_sync()
        second = await sync_services.store.get_cycles_by_date_range(NOW - timedelta(days=7), NOW)

        assert [(c.id, c.strain, c.start_time) for c in first] == [(c.id, c.strain, c.start_time) for c in second]

    async def test_upstream_error_propagates(self, sync_services, whoop_api):
        whoop_api.fail(RecordKind.WORKOUT, 502)

        with pytest.raises(WhoopAPIError) as exc_info:
            await sync_services.sync.sync_window(7)

        assert exc_info.value.status_code == 502
        state = await sync_services.store.get_sync_state()
        assert state.last_sync_at is None

    async def test_failed_fetch_cancels_the_others(self, sync_services, monkeypatch):
        cancelled = []

        async def fetch_all(kind, start=None, end=None):
            if kind == RecordKind.WORKOUT:
                raise WhoopAPIError("API request failed: 502", status_code=502)
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append(kind)
                raise

        monkeypatch.setattr(sync_services.client, "fetch_all", fetch_all)

        with pytest.raises(WhoopAPIError):
            await sync_services.sync.sync_window(7)

        assert sorted(k.value for k in cancelled) == ["cycle", "recovery", "sleep"]

    async def test_store_failure_keeps_earlier_kinds(self, sync_services, monkeypatch):
        async def broken_upsert(records):
            raise RuntimeError("disk full")

        monkeypatch.setattr(sync_services.store, "upsert_sleeps", broken_upsert)

        with pytest.raises(RuntimeError):
            await sync_services.sync.sync_window(7)

        assert (await sync_services.store.get_latest_cycle()).id == 2
        assert (await sync_services.store.get_latest_recovery()).cycle_id == 2
        assert (await sync_services.store.get_sync_state()).last_sync_at is None

    async def test_requires_authentication(self, services):
        with pytest.raises(WhoopNotAuthenticatedError):
            await services.sync.quick_sync()
