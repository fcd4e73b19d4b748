"""
Whoop data sync service
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from whoop_mcp.integrations.whoop.client import WhoopClient
from whoop_mcp.schemas.whoop import RecordKind, SyncResult, SyncStats
from whoop_mcp.services.whoop_store import WhoopStore
from whoop_mcp.utils.datetime_helper import ensure_utc, utc_now

logger = logging.getLogger(__name__)

FULL_SYNC_DAYS = 90
QUICK_SYNC_DAYS = 7
# Upstream scores finalize roughly hourly
STALENESS_WINDOW = timedelta(hours=1)


def decide_sync_action(last_sync_at: Optional[datetime], now: datetime) -> str:
    """
    Staleness policy

    Args:
        last_sync_at: completion time of the last sync (None if never synced)
        now: current time

    Returns:
        "full" | "quick" | "skip"
    """
    if last_sync_at is None:
        return "full"
    if ensure_utc(now) - ensure_utc(last_sync_at) >= STALENESS_WINDOW:
        return "quick"
    return "skip"


class WhoopSyncService:
    """Pulls Whoop collections into the local store"""

    def __init__(
        self,
        client: WhoopClient,
        store: WhoopStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client = client
        self.store = store
        self.clock = clock
        self._smart_sync_lock = asyncio.Lock()

    async def sync_window(self, days: int) -> SyncStats:
        """
        Sync the trailing window [now - days, now]

        All four collections are fetched concurrently (a failed fetch cancels
        the rest), then upserted one kind at a time. Kinds already upserted
        stay committed if a later step fails.

        Args:
            days: window length

        Returns:
            per-kind record counts

        Raises:
            WhoopAPIError: upstream failure (propagated unchanged)
            WhoopNotAuthenticatedError: no tokens on the client
        """
        end = self.clock()
        start = end - timedelta(days=days)
        logger.info(f"Syncing Whoop data: {start.isoformat()} -> {end.isoformat()} ({days} days)")

        fetches = [
            asyncio.create_task(self.client.fetch_all(kind, start, end))
            for kind in (RecordKind.CYCLE, RecordKind.RECOVERY, RecordKind.SLEEP, RecordKind.WORKOUT)
        ]
        try:
            cycles, recoveries, sleeps, workouts = await asyncio.gather(*fetches)
        except BaseException:
            for task in fetches:
                task.cancel()
            await asyncio.gather(*fetches, return_exceptions=True)
            raise

        if cycles:
            await self.store.upsert_cycles(cycles)
        if recoveries:
            await self.store.upsert_recoveries(recoveries)
        if sleeps:
            await self.store.upsert_sleeps(sleeps)
        if workouts:
            await self.store.upsert_workouts(workouts)

        await self.store.update_sync_state(start.date(), end.date(), now=self.clock())

        stats = SyncStats(
            cycles=len(cycles),
            recoveries=len(recoveries),
            sleeps=len(sleeps),
            workouts=len(workouts),
        )
        logger.info(
            f"Whoop sync complete: cycles={stats.cycles}, recoveries={stats.recoveries}, "
            f"sleeps={stats.sleeps}, workouts={stats.workouts}"
        )
        return stats

    async def full_sync(self) -> SyncStats:
        return await self.sync_window(FULL_SYNC_DAYS)

    async def quick_sync(self) -> SyncStats:
        return await self.sync_window(QUICK_SYNC_DAYS)

    async def smart_sync(self) -> SyncResult:
        """
        Sync only as much as the cache staleness calls for

        Callers arriving while a sync is running wait for it, then re-check
        staleness (and normally skip).

        Returns:
            SyncResult tagged full / quick / skip
        """
        async with self._smart_sync_lock:
            state = await self.store.get_sync_state()
            action = decide_sync_action(state.last_sync_at, self.clock())
            logger.info(f"Smart sync decision: {action} (last sync: {state.last_sync_at})")

            if action == "skip":
                return SyncResult(type="skip")
            if action == "full":
                return SyncResult(type="full", stats=await self.full_sync())
            return SyncResult(type="quick", stats=await self.quick_sync())
