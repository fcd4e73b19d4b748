"""
Local Whoop data store

Durable cache of cycles, recovery, sleep and workouts plus sync bookkeeping.
Every record kind is replace-on-conflict by its upstream key; nothing is
ever deleted.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, Union

from sqlalchemy import desc, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine

from whoop_mcp.database.base import Base
from whoop_mcp.database.session import create_session_factory
from whoop_mcp.models.whoop import Cycle, Recovery, Sleep, SyncState, WhoopToken, Workout
from whoop_mcp.schemas.whoop import (
    CycleScore,
    RecordKind,
    RecoveryScore,
    RecoveryTrendPoint,
    SleepScore,
    SleepTrendPoint,
    StrainTrendPoint,
    SyncStateSnapshot,
    WhoopCycle,
    WhoopRecovery,
    WhoopSleep,
    WhoopWorkout,
    WorkoutScore,
)
from whoop_mcp.utils.datetime_helper import utc_now

logger = logging.getLogger(__name__)

KJ_PER_KCAL = 4.184
MS_PER_HOUR = 3_600_000

DateBound = Union[date, datetime]


# ============ Row mappers ============

def cycle_row(c: WhoopCycle) -> Dict[str, Any]:
    score = c.score or CycleScore()
    return {
        "id": c.id,
        "user_id": c.user_id,
        "created_at": c.created_at,
        "updated_at": c.updated_at,
        "start_time": c.start,
        "end_time": c.end,
        "timezone_offset": c.timezone_offset,
        "score_state": c.score_state,
        "strain": score.strain,
        "kilojoule": score.kilojoule,
        "avg_hr": score.average_heart_rate,
        "max_hr": score.max_heart_rate,
    }


def recovery_row(r: WhoopRecovery) -> Dict[str, Any]:
    score = r.score or RecoveryScore()
    return {
        "cycle_id": r.cycle_id,
        "user_id": r.user_id,
        "sleep_id": r.sleep_id,
        "created_at": r.created_at,
        "updated_at": r.updated_at,
        "score_state": r.score_state,
        "user_calibrating": score.user_calibrating,
        "recovery_score": score.recovery_score,
        "resting_hr": score.resting_heart_rate,
        "hrv_rmssd": score.hrv_rmssd_milli,
        "spo2": score.spo2_percentage,
        "skin_temp": score.skin_temp_celsius,
    }


def sleep_row(s: WhoopSleep) -> Dict[str, Any]:
    score = s.score or SleepScore()
    stages = score.stage_summary
    needed = score.sleep_needed
    return {
        "id": s.id,
        "user_id": s.user_id,
        "cycle_id": s.cycle_id,
        "created_at": s.created_at,
        "updated_at": s.updated_at,
        "start_time": s.start,
        "end_time": s.end,
        "timezone_offset": s.timezone_offset,
        "is_nap": s.nap,
        "score_state": s.score_state,
        "total_in_bed_milli": stages.total_in_bed_time_milli,
        "total_awake_milli": stages.total_awake_time_milli,
        "total_no_data_milli": stages.total_no_data_time_milli,
        "total_light_milli": stages.total_light_sleep_time_milli,
        "total_deep_milli": stages.total_slow_wave_sleep_time_milli,
        "total_rem_milli": stages.total_rem_sleep_time_milli,
        "sleep_cycle_count": stages.sleep_cycle_count,
        "disturbance_count": stages.disturbance_count,
        "sleep_performance": score.sleep_performance_percentage,
        "sleep_efficiency": score.sleep_efficiency_percentage,
        "sleep_consistency": score.sleep_consistency_percentage,
        "respiratory_rate": score.respiratory_rate,
        "sleep_needed_baseline_milli": needed.baseline_milli,
        "sleep_needed_debt_milli": needed.need_from_sleep_debt_milli,
        "sleep_needed_strain_milli": needed.need_from_recent_strain_milli,
        "sleep_needed_nap_milli": needed.need_from_recent_nap_milli,
    }


def workout_row(w: WhoopWorkout) -> Dict[str, Any]:
    score = w.score or WorkoutScore()
    zones = score.zone_durations
    return {
        "id": w.id,
        "user_id": w.user_id,
        "sport_id": w.sport_id,
        "sport_name": w.sport_name,
        "created_at": w.created_at,
        "updated_at": w.updated_at,
        "start_time": w.start,
        "end_time": w.end,
        "timezone_offset": w.timezone_offset,
        "score_state": w.score_state,
        "strain": score.strain,
        "avg_hr": score.average_heart_rate,
        "max_hr": score.max_heart_rate,
        "kilojoule": score.kilojoule,
        "percent_recorded": score.percent_recorded,
        "distance_meter": score.distance_meter,
        "altitude_gain_meter": score.altitude_gain_meter,
        "zone_zero_milli": zones.zone_zero_milli,
        "zone_one_milli": zones.zone_one_milli,
        "zone_two_milli": zones.zone_two_milli,
        "zone_three_milli": zones.zone_three_milli,
        "zone_four_milli": zones.zone_four_milli,
        "zone_five_milli": zones.zone_five_milli,
    }


# kind -> (model, primary key column, row mapper)
RECORD_TABLES: Dict[RecordKind, Tuple[Type[Base], str, Callable[[Any], Dict[str, Any]]]] = {
    RecordKind.CYCLE: (Cycle, "id", cycle_row),
    RecordKind.RECOVERY: (Recovery, "cycle_id", recovery_row),
    RecordKind.SLEEP: (Sleep, "id", sleep_row),
    RecordKind.WORKOUT: (Workout, "id", workout_row),
}


def _range_bounds(start: DateBound, end: DateBound) -> Tuple[datetime, datetime]:
    """Inclusive bounds; plain dates cover the whole day (UTC)"""
    if not isinstance(start, datetime):
        start = datetime.combine(start, time.min, tzinfo=timezone.utc)
    if not isinstance(end, datetime):
        end = datetime.combine(end, time.max, tzinfo=timezone.utc)
    return start, end


def _kj_to_kcal(kilojoule: Optional[float]) -> Optional[int]:
    # Round half up, matching the Whoop app
    if kilojoule is None:
        return None
    return int(kilojoule / KJ_PER_KCAL + 0.5)


class WhoopStore:
    """Local relational cache"""

    def __init__(self, engine: Optional[AsyncEngine] = None, clock: Callable[[], datetime] = utc_now):
        if engine is None:
            from whoop_mcp.database.session import engine as default_engine
            engine = default_engine
        self.engine = engine
        self.session_factory = create_session_factory(engine)
        self.clock = clock

    def _insert(self, model: Type[Base]):
        dialect = self.engine.dialect.name
        if dialect == "sqlite":
            return sqlite.insert(model)
        if dialect == "postgresql":
            return postgresql.insert(model)
        raise NotImplementedError(f"Upsert not supported for dialect: {dialect}")

    # ============ Upsert ============

    async def upsert_batch(self, kind: RecordKind, records: Sequence[Any]) -> int:
        """
        Replace-on-conflict a batch of upstream records in one transaction

        Args:
            kind: record kind
            records: parsed upstream records of that kind

        Returns:
            number of distinct rows written

        Raises:
            SQLAlchemyError: the whole batch is rolled back
        """
        if not records:
            return 0

        model, pk, mapper = RECORD_TABLES[kind]

        # Last occurrence wins when upstream repeats a key within one batch
        rows_by_key: Dict[Any, Dict[str, Any]] = {}
        for record in records:
            row = mapper(record)
            rows_by_key[row[pk]] = row
        rows = list(rows_by_key.values())

        stmt = self._insert(model)
        stmt = stmt.on_conflict_do_update(
            index_elements=[pk],
            set_={
                column.name: stmt.excluded[column.name]
                for column in model.__table__.columns
                if column.name != pk
            },
        )

        async with self.session_factory() as db:
            async with db.begin():
                await db.execute(stmt, rows)

        logger.info(f"Upserted {len(rows)} {kind.value} records")
        return len(rows)

    async def upsert_cycles(self, cycles: Sequence[WhoopCycle]) -> int:
        return await self.upsert_batch(RecordKind.CYCLE, cycles)

    async def upsert_recoveries(self, recoveries: Sequence[WhoopRecovery]) -> int:
        return await self.upsert_batch(RecordKind.RECOVERY, recoveries)

    async def upsert_sleeps(self, sleeps: Sequence[WhoopSleep]) -> int:
        return await self.upsert_batch(RecordKind.SLEEP, sleeps)

    async def upsert_workouts(self, workouts: Sequence[WhoopWorkout]) -> int:
        return await self.upsert_batch(RecordKind.WORKOUT, workouts)

    # ============ Sync state ============

    async def get_sync_state(self) -> SyncStateSnapshot:
        async with self.session_factory() as db:
            state = await db.get(SyncState, 1)
            if state is None:
                return SyncStateSnapshot()
            return SyncStateSnapshot(
                last_sync_at=state.last_sync_at,
                oldest_synced_date=state.oldest_synced_date,
                newest_synced_date=state.newest_synced_date,
            )

    async def update_sync_state(
        self,
        oldest_date: date,
        newest_date: date,
        now: Optional[datetime] = None,
    ) -> SyncStateSnapshot:
        """
        Widen the synced date range and stamp last_sync_at

        Args:
            oldest_date: oldest date covered by the sync just completed
            newest_date: newest date covered by the sync just completed
            now: sync completion time (defaults to the store clock)

        Returns:
            updated sync state
        """
        now = now or self.clock()

        async with self.session_factory() as db:
            async with db.begin():
                state = await db.get(SyncState, 1)
                if state is None:
                    state = SyncState(id=1)
                    db.add(state)

                if state.oldest_synced_date is None or oldest_date < state.oldest_synced_date:
                    state.oldest_synced_date = oldest_date
                if state.newest_synced_date is None or newest_date > state.newest_synced_date:
                    state.newest_synced_date = newest_date
                state.last_sync_at = now

            return SyncStateSnapshot(
                last_sync_at=state.last_sync_at,
                oldest_synced_date=state.oldest_synced_date,
                newest_synced_date=state.newest_synced_date,
            )

    # ============ Credentials ============

    async def get_token_row(self) -> Optional[WhoopToken]:
        async with self.session_factory() as db:
            return await db.get(WhoopToken, 1)

    async def save_token_row(self, access_token: str, refresh_token: str, expires_at: datetime) -> None:
        """Overwrite the singleton credential row"""
        async with self.session_factory() as db:
            async with db.begin():
                row = await db.get(WhoopToken, 1)
                if row is None:
                    row = WhoopToken(id=1)
                    db.add(row)
                row.access_token = access_token
                row.refresh_token = refresh_token
                row.expires_at = expires_at
                row.updated_at = self.clock()

    # ============ Point queries ============

    async def get_latest_cycle(self) -> Optional[Cycle]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Cycle).order_by(desc(Cycle.start_time)).limit(1)
            )
            return result.scalars().first()

    async def get_latest_recovery(self) -> Optional[Recovery]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Recovery).order_by(desc(Recovery.created_at)).limit(1)
            )
            return result.scalars().first()

    async def get_latest_sleep(self) -> Optional[Sleep]:
        """Latest main sleep (naps excluded)"""
        async with self.session_factory() as db:
            result = await db.execute(
                select(Sleep)
                .where(Sleep.is_nap.is_(False))
                .order_by(desc(Sleep.start_time))
                .limit(1)
            )
            return result.scalars().first()

    # ============ Range queries ============

    async def get_cycles_by_date_range(self, start: DateBound, end: DateBound) -> List[Cycle]:
        start_dt, end_dt = _range_bounds(start, end)
        async with self.session_factory() as db:
            result = await db.execute(
                select(Cycle)
                .where(Cycle.start_time >= start_dt, Cycle.start_time <= end_dt)
                .order_by(desc(Cycle.start_time))
            )
            return list(result.scalars().all())

    async def get_recoveries_by_date_range(self, start: DateBound, end: DateBound) -> List[Recovery]:
        start_dt, end_dt = _range_bounds(start, end)
        async with self.session_factory() as db:
            result = await db.execute(
                select(Recovery)
                .where(Recovery.created_at >= start_dt, Recovery.created_at <= end_dt)
                .order_by(desc(Recovery.created_at))
            )
            return list(result.scalars().all())

    async def get_sleeps_by_date_range(
        self,
        start: DateBound,
        end: DateBound,
        include_naps: bool = False,
    ) -> List[Sleep]:
        start_dt, end_dt = _range_bounds(start, end)
        query = select(Sleep).where(Sleep.start_time >= start_dt, Sleep.start_time <= end_dt)
        if not include_naps:
            query = query.where(Sleep.is_nap.is_(False))

        async with self.session_factory() as db:
            result = await db.execute(query.order_by(desc(Sleep.start_time)))
            return list(result.scalars().all())

    async def get_workouts_by_date_range(self, start: DateBound, end: DateBound) -> List[Workout]:
        start_dt, end_dt = _range_bounds(start, end)
        async with self.session_factory() as db:
            result = await db.execute(
                select(Workout)
                .where(Workout.start_time >= start_dt, Workout.start_time <= end_dt)
                .order_by(desc(Workout.start_time))
            )
            return list(result.scalars().all())

    # ============ Trends ============

    def _trend_window(self, days: int, now: Optional[datetime]) -> Tuple[datetime, datetime]:
        now = now or self.clock()
        return now - timedelta(days=days), now

    async def get_recovery_trends(self, days: int, now: Optional[datetime] = None) -> List[RecoveryTrendPoint]:
        """
        Scored recoveries in the trailing window, most recent first

        Args:
            days: window length
            now: window anchor (defaults to the store clock)
        """
        cutoff, now = self._trend_window(days, now)
        async with self.session_factory() as db:
            result = await db.execute(
                select(Recovery)
                .where(
                    Recovery.recovery_score.is_not(None),
                    Recovery.created_at >= cutoff,
                    Recovery.created_at <= now,
                )
                .order_by(desc(Recovery.created_at))
            )
            rows = result.scalars().all()

        return [
            RecoveryTrendPoint(
                date=r.created_at.date(),
                recovery_score=r.recovery_score,
                hrv=r.hrv_rmssd,
                rhr=r.resting_hr,
            )
            for r in rows
        ]

    async def get_sleep_trends(self, days: int, now: Optional[datetime] = None) -> List[SleepTrendPoint]:
        """
        Scored main sleeps in the trailing window, most recent first

        total_sleep_hours = (time in bed - time awake) / 1h
        """
        cutoff, now = self._trend_window(days, now)
        async with self.session_factory() as db:
            result = await db.execute(
                select(Sleep)
                .where(
                    Sleep.is_nap.is_(False),
                    Sleep.sleep_performance.is_not(None),
                    Sleep.start_time >= cutoff,
                    Sleep.start_time <= now,
                )
                .order_by(desc(Sleep.start_time))
            )
            rows = result.scalars().all()

        points = []
        for s in rows:
            total_sleep_hours = None
            if s.total_in_bed_milli is not None and s.total_awake_milli is not None:
                total_sleep_hours = round((s.total_in_bed_milli - s.total_awake_milli) / MS_PER_HOUR, 2)
            points.append(
                SleepTrendPoint(
                    date=s.start_time.date(),
                    total_sleep_hours=total_sleep_hours,
                    performance=s.sleep_performance,
                    efficiency=s.sleep_efficiency,
                )
            )
        return points

    async def get_strain_trends(self, days: int, now: Optional[datetime] = None) -> List[StrainTrendPoint]:
        """Scored cycles in the trailing window, most recent first (calories = kJ / 4.184)"""
        cutoff, now = self._trend_window(days, now)
        async with self.session_factory() as db:
            result = await db.execute(
                select(Cycle)
                .where(
                    Cycle.strain.is_not(None),
                    Cycle.start_time >= cutoff,
                    Cycle.start_time <= now,
                )
                .order_by(desc(Cycle.start_time))
            )
            rows = result.scalars().all()

        return [
            StrainTrendPoint(
                date=c.start_time.date(),
                strain=c.strain,
                calories=_kj_to_kcal(c.kilojoule),
            )
            for c in rows
        ]
