"""
Whoop API payload and result schemas
"""
from __future__ import annotations

from datetime import datetime, date as DateType, timedelta
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from whoop_mcp.utils.datetime_helper import ensure_utc


class RecordKind(str, Enum):
    """Record collections mirrored into the local store"""

    CYCLE = "cycle"
    RECOVERY = "recovery"
    SLEEP = "sleep"
    WORKOUT = "workout"


class ScoreState(str, Enum):
    SCORED = "SCORED"
    PENDING_SCORE = "PENDING_SCORE"
    UNSCORABLE = "UNSCORABLE"


class WhoopModel(BaseModel):
    """Base for upstream payloads; unknown fields are ignored"""

    model_config = ConfigDict(extra="ignore", use_enum_values=True)


# ============ OAuth ============

class WhoopTokens(BaseModel):
    """Access/refresh token pair"""

    access_token: str
    refresh_token: str
    expires_at: datetime

    @classmethod
    def from_token_response(
        cls,
        payload: Dict[str, Any],
        now: datetime,
        previous_refresh_token: Optional[str] = None,
    ) -> "WhoopTokens":
        """
        Build tokens from an OAuth token endpoint response

        Args:
            payload: token endpoint JSON ({access_token, refresh_token, expires_in})
            now: issue time used to compute expires_at
            previous_refresh_token: kept when the response omits a new refresh token

        Returns:
            WhoopTokens
        """
        refresh_token = payload.get("refresh_token") or previous_refresh_token
        if not payload.get("access_token") or not refresh_token:
            raise ValueError("Token response missing access_token or refresh_token")
        return cls(
            access_token=payload["access_token"],
            refresh_token=refresh_token,
            expires_at=ensure_utc(now) + timedelta(seconds=int(payload.get("expires_in", 3600))),
        )

    def expires_within(self, window: timedelta, now: datetime) -> bool:
        return ensure_utc(self.expires_at) - ensure_utc(now) < window


# ============ Upstream records ============

class CycleScore(WhoopModel):
    strain: Optional[float] = None
    kilojoule: Optional[float] = None
    average_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None


class WhoopCycle(WhoopModel):
    id: int
    user_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    start: datetime
    end: Optional[datetime] = None
    timezone_offset: Optional[str] = None
    score_state: ScoreState
    score: Optional[CycleScore] = None


class RecoveryScore(WhoopModel):
    user_calibrating: Optional[bool] = None
    recovery_score: Optional[float] = None
    resting_heart_rate: Optional[float] = None
    hrv_rmssd_milli: Optional[float] = None
    spo2_percentage: Optional[float] = None
    skin_temp_celsius: Optional[float] = None


class WhoopRecovery(WhoopModel):
    cycle_id: int
    sleep_id: Optional[str] = None
    user_id: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    score_state: ScoreState
    score: Optional[RecoveryScore] = None


class SleepStageSummary(WhoopModel):
    total_in_bed_time_milli: Optional[int] = None
    total_awake_time_milli: Optional[int] = None
    total_no_data_time_milli: Optional[int] = None
    total_light_sleep_time_milli: Optional[int] = None
    total_slow_wave_sleep_time_milli: Optional[int] = None
    total_rem_sleep_time_milli: Optional[int] = None
    sleep_cycle_count: Optional[int] = None
    disturbance_count: Optional[int] = None


class SleepNeeded(WhoopModel):
    baseline_milli: Optional[int] = None
    need_from_sleep_debt_milli: Optional[int] = None
    need_from_recent_strain_milli: Optional[int] = None
    need_from_recent_nap_milli: Optional[int] = None


class SleepScore(WhoopModel):
    stage_summary: SleepStageSummary = Field(default_factory=SleepStageSummary)
    sleep_needed: SleepNeeded = Field(default_factory=SleepNeeded)
    respiratory_rate: Optional[float] = None
    sleep_performance_percentage: Optional[float] = None
    sleep_consistency_percentage: Optional[float] = None
    sleep_efficiency_percentage: Optional[float] = None


class WhoopSleep(WhoopModel):
    id: str
    cycle_id: Optional[int] = None
    user_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    start: datetime
    end: datetime
    timezone_offset: Optional[str] = None
    nap: bool = False
    score_state: ScoreState
    score: Optional[SleepScore] = None


class ZoneDurations(WhoopModel):
    zone_zero_milli: Optional[int] = None
    zone_one_milli: Optional[int] = None
    zone_two_milli: Optional[int] = None
    zone_three_milli: Optional[int] = None
    zone_four_milli: Optional[int] = None
    zone_five_milli: Optional[int] = None


class WorkoutScore(WhoopModel):
    strain: Optional[float] = None
    average_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None
    kilojoule: Optional[float] = None
    percent_recorded: Optional[float] = None
    distance_meter: Optional[float] = None
    altitude_gain_meter: Optional[float] = None
    zone_durations: ZoneDurations = Field(default_factory=ZoneDurations)


class WhoopWorkout(WhoopModel):
    id: str
    user_id: int
    sport_id: Optional[int] = None
    sport_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    start: datetime
    end: datetime
    timezone_offset: Optional[str] = None
    score_state: ScoreState
    score: Optional[WorkoutScore] = None


class WhoopPage(WhoopModel):
    """One page of a paginated collection"""

    records: List[Dict[str, Any]] = Field(default_factory=list)
    next_token: Optional[str] = None


class WhoopProfile(WhoopModel):
    user_id: int
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class WhoopBodyMeasurement(WhoopModel):
    height_meter: Optional[float] = None
    weight_kilogram: Optional[float] = None
    max_heart_rate: Optional[int] = None


RECORD_MODELS = {
    RecordKind.CYCLE: WhoopCycle,
    RecordKind.RECOVERY: WhoopRecovery,
    RecordKind.SLEEP: WhoopSleep,
    RecordKind.WORKOUT: WhoopWorkout,
}


# ============ Store / sync results ============

class SyncStateSnapshot(BaseModel):
    last_sync_at: Optional[datetime] = None
    oldest_synced_date: Optional[DateType] = None
    newest_synced_date: Optional[DateType] = None


class SyncStats(BaseModel):
    """Per-kind record counts fetched by one sync window"""

    cycles: int = 0
    recoveries: int = 0
    sleeps: int = 0
    workouts: int = 0


class SyncResult(BaseModel):
    type: Literal["full", "quick", "skip"]
    stats: Optional[SyncStats] = None


class RecoveryTrendPoint(BaseModel):
    date: DateType
    recovery_score: float
    hrv: Optional[float] = None
    rhr: Optional[float] = None


class SleepTrendPoint(BaseModel):
    date: DateType
    total_sleep_hours: Optional[float] = None
    performance: float
    efficiency: Optional[float] = None


class StrainTrendPoint(BaseModel):
    date: DateType
    strain: float
    calories: Optional[int] = None
