"""
Whoop data models
"""
from __future__ import annotations

from datetime import datetime, date
from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Date, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from whoop_mcp.database.base import Base
from whoop_mcp.database.types import UTCDateTime


class WhoopToken(Base):
    """OAuth credential set (singleton row, values encrypted at rest)"""

    __tablename__ = "tokens"
    __table_args__ = (CheckConstraint("id = 1", name="ck_tokens_singleton"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    def __repr__(self):
        return f"<WhoopToken expires_at={self.expires_at}>"


class SyncState(Base):
    """Sync bookkeeping (singleton row)"""

    __tablename__ = "sync_state"
    __table_args__ = (CheckConstraint("id = 1", name="ck_sync_state_singleton"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    oldest_synced_date: Mapped[Optional[date]] = mapped_column(Date)
    newest_synced_date: Mapped[Optional[date]] = mapped_column(Date)

    def __repr__(self):
        return (
            f"<SyncState last_sync_at={self.last_sync_at} "
            f"range={self.oldest_synced_date}..{self.newest_synced_date}>"
        )


class Cycle(Base):
    """Physiological day cycle"""

    __tablename__ = "cycles"
    __table_args__ = (Index("idx_cycles_start", "start_time"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    timezone_offset: Mapped[Optional[str]] = mapped_column(String(16))
    score_state: Mapped[str] = mapped_column(String(32), nullable=False)  # SCORED / PENDING_SCORE / UNSCORABLE

    strain: Mapped[Optional[float]] = mapped_column(Float)
    kilojoule: Mapped[Optional[float]] = mapped_column(Float)
    avg_hr: Mapped[Optional[int]] = mapped_column(Integer)
    max_hr: Mapped[Optional[int]] = mapped_column(Integer)

    def __repr__(self):
        return f"<Cycle id={self.id} start={self.start_time} strain={self.strain}>"


class Recovery(Base):
    """Recovery score, one per cycle"""

    __tablename__ = "recovery"
    __table_args__ = (Index("idx_recovery_created", "created_at"),)

    cycle_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sleep_id: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    score_state: Mapped[str] = mapped_column(String(32), nullable=False)

    user_calibrating: Mapped[Optional[bool]] = mapped_column(Boolean)
    recovery_score: Mapped[Optional[float]] = mapped_column(Float)  # 0-100%
    resting_hr: Mapped[Optional[float]] = mapped_column(Float)
    hrv_rmssd: Mapped[Optional[float]] = mapped_column(Float)
    spo2: Mapped[Optional[float]] = mapped_column(Float)
    skin_temp: Mapped[Optional[float]] = mapped_column(Float)

    def __repr__(self):
        return f"<Recovery cycle_id={self.cycle_id} score={self.recovery_score}>"


class Sleep(Base):
    """Sleep activity (main sleep or nap)"""

    __tablename__ = "sleep"
    __table_args__ = (Index("idx_sleep_start", "start_time"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Lookup only; cycles are not owners of sleeps
    cycle_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    timezone_offset: Mapped[Optional[str]] = mapped_column(String(16))
    is_nap: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    score_state: Mapped[str] = mapped_column(String(32), nullable=False)

    # Stage summary (milliseconds)
    total_in_bed_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    total_awake_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    total_no_data_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    total_light_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    total_deep_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    total_rem_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    sleep_cycle_count: Mapped[Optional[int]] = mapped_column(Integer)
    disturbance_count: Mapped[Optional[int]] = mapped_column(Integer)

    # Score metrics
    sleep_performance: Mapped[Optional[float]] = mapped_column(Float)
    sleep_efficiency: Mapped[Optional[float]] = mapped_column(Float)
    sleep_consistency: Mapped[Optional[float]] = mapped_column(Float)
    respiratory_rate: Mapped[Optional[float]] = mapped_column(Float)

    # Sleep need (milliseconds)
    sleep_needed_baseline_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    sleep_needed_debt_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    sleep_needed_strain_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    sleep_needed_nap_milli: Mapped[Optional[int]] = mapped_column(BigInteger)

    def __repr__(self):
        return f"<Sleep id={self.id} start={self.start_time} nap={self.is_nap}>"


class Workout(Base):
    """Workout activity"""

    __tablename__ = "workouts"
    __table_args__ = (Index("idx_workouts_start", "start_time"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sport_id: Mapped[Optional[int]] = mapped_column(Integer)
    sport_name: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    timezone_offset: Mapped[Optional[str]] = mapped_column(String(16))
    score_state: Mapped[str] = mapped_column(String(32), nullable=False)

    strain: Mapped[Optional[float]] = mapped_column(Float)
    avg_hr: Mapped[Optional[int]] = mapped_column(Integer)
    max_hr: Mapped[Optional[int]] = mapped_column(Integer)
    kilojoule: Mapped[Optional[float]] = mapped_column(Float)
    percent_recorded: Mapped[Optional[float]] = mapped_column(Float)
    distance_meter: Mapped[Optional[float]] = mapped_column(Float)
    altitude_gain_meter: Mapped[Optional[float]] = mapped_column(Float)

    # Heart-rate zone durations (milliseconds)
    zone_zero_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    zone_one_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    zone_two_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    zone_three_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    zone_four_milli: Mapped[Optional[int]] = mapped_column(BigInteger)
    zone_five_milli: Mapped[Optional[int]] = mapped_column(BigInteger)

    def __repr__(self):
        return f"<Workout id={self.id} start={self.start_time} strain={self.strain}>"
