"""
Markdown rendering for tool responses
"""
from typing import List, Optional, Sequence

from whoop_mcp.models.whoop import Cycle, Recovery, Sleep, Workout
from whoop_mcp.schemas.whoop import (
    RecoveryTrendPoint,
    SleepTrendPoint,
    StrainTrendPoint,
    SyncStats,
)
from whoop_mcp.utils.datetime_helper import format_day, format_duration_ms

NOT_AUTHENTICATED_MESSAGE = "Not authenticated with Whoop. Use get_auth_url to authorize first."
NO_DATA_MESSAGE = "No data available. Try running sync_data first."
UP_TO_DATE_MESSAGE = "Data is already up to date (synced within the last hour)."


def recovery_zone(score: float) -> str:
    if score >= 67:
        return "Green (Well Recovered)"
    if score >= 34:
        return "Yellow (Moderate)"
    return "Red (Needs Rest)"


def strain_zone(strain: float) -> str:
    if strain >= 18:
        return "All Out (18-21)"
    if strain >= 14:
        return "High (14-17)"
    if strain >= 10:
        return "Moderate (10-13)"
    return "Light (0-9)"


def _fmt(value: Optional[float], digits: int = 1, suffix: str = "") -> str:
    if value is None:
        return "N/A"
    return f"{value:.{digits}f}{suffix}"


def _avg(values: Sequence[Optional[float]]) -> float:
    # Missing values count as zero
    if not values:
        return 0.0
    return sum(v or 0 for v in values) / len(values)


def render_today(
    recovery: Optional[Recovery],
    sleep: Optional[Sleep],
    cycle: Optional[Cycle],
) -> str:
    """Latest recovery, main sleep and cycle as one summary"""
    if recovery is None and sleep is None and cycle is None:
        return NO_DATA_MESSAGE

    lines: List[str] = ["# Today's Whoop Summary", ""]

    if recovery is not None:
        score = recovery.recovery_score
        zone = recovery_zone(score) if score is not None else ""
        lines.append(f"## Recovery: {_fmt(score, 0, '%')} {zone}".rstrip())
        lines.append(f"- **HRV**: {_fmt(recovery.hrv_rmssd)} ms")
        lines.append(f"- **Resting HR**: {_fmt(recovery.resting_hr, 0)} bpm")
        if recovery.spo2:
            lines.append(f"- **SpO2**: {recovery.spo2:.1f}%")
        if recovery.skin_temp:
            lines.append(f"- **Skin Temp**: {recovery.skin_temp:.1f}°C")
        lines.append("")

    if sleep is not None:
        total_sleep = (sleep.total_in_bed_milli or 0) - (sleep.total_awake_milli or 0)
        lines.append("## Last Night's Sleep")
        lines.append(f"- **Total Sleep**: {format_duration_ms(total_sleep)}")
        lines.append(f"- **Performance**: {_fmt(sleep.sleep_performance, 0, '%')}")
        lines.append(f"- **Efficiency**: {_fmt(sleep.sleep_efficiency, 0, '%')}")
        lines.append(
            f"- **Stages**: Light {format_duration_ms(sleep.total_light_milli)}, "
            f"Deep {format_duration_ms(sleep.total_deep_milli)}, "
            f"REM {format_duration_ms(sleep.total_rem_milli)}"
        )
        if sleep.respiratory_rate:
            lines.append(f"- **Respiratory Rate**: {sleep.respiratory_rate:.1f} breaths/min")
        lines.append("")

    if cycle is not None:
        zone = strain_zone(cycle.strain) if cycle.strain is not None else ""
        lines.append("## Current Strain")
        lines.append(f"- **Day Strain**: {_fmt(cycle.strain)} {zone}".rstrip())
        if cycle.kilojoule:
            lines.append(f"- **Calories**: {int(cycle.kilojoule / 4.184 + 0.5)} kcal")
        if cycle.avg_hr:
            lines.append(f"- **Avg HR**: {cycle.avg_hr} bpm")
        if cycle.max_hr:
            lines.append(f"- **Max HR**: {cycle.max_hr} bpm")

    return "\n".join(lines).rstrip() + "\n"


def render_recovery_trends(days: int, trends: List[RecoveryTrendPoint]) -> str:
    if not trends:
        return "No recovery data available for the requested period."

    lines = [
        f"# Recovery Trends (Last {days} Days)",
        "",
        "| Date | Recovery | HRV | RHR |",
        "|------|----------|-----|-----|",
    ]
    for point in trends:
        lines.append(
            f"| {format_day(point.date)} | {point.recovery_score:.0f}% "
            f"| {_fmt(point.hrv, 1, ' ms')} | {_fmt(point.rhr, 0, ' bpm')} |"
        )

    lines += [
        "",
        "## Averages",
        f"- **Recovery**: {_avg([p.recovery_score for p in trends]):.0f}%",
        f"- **HRV**: {_avg([p.hrv for p in trends]):.1f} ms",
        f"- **RHR**: {_avg([p.rhr for p in trends]):.0f} bpm",
    ]
    return "\n".join(lines) + "\n"


def render_sleep_trends(days: int, trends: List[SleepTrendPoint]) -> str:
    if not trends:
        return "No sleep data available for the requested period."

    lines = [
        f"# Sleep Analysis (Last {days} Days)",
        "",
        "| Date | Duration | Performance | Efficiency |",
        "|------|----------|-------------|------------|",
    ]
    for point in trends:
        lines.append(
            f"| {format_day(point.date)} | {_fmt(point.total_sleep_hours, 1, 'h')} "
            f"| {point.performance:.0f}% | {_fmt(point.efficiency, 0, '%')} |"
        )

    lines += [
        "",
        "## Averages",
        f"- **Duration**: {_avg([p.total_sleep_hours for p in trends]):.1f} hours",
        f"- **Performance**: {_avg([p.performance for p in trends]):.0f}%",
        f"- **Efficiency**: {_avg([p.efficiency for p in trends]):.0f}%",
    ]
    return "\n".join(lines) + "\n"


def render_strain_history(
    days: int,
    trends: List[StrainTrendPoint],
    workouts: Optional[List[Workout]] = None,
) -> str:
    if not trends:
        return "No strain data available for the requested period."

    lines = [
        f"# Strain History (Last {days} Days)",
        "",
        "| Date | Strain | Calories |",
        "|------|--------|----------|",
    ]
    for point in trends:
        calories = f"{point.calories} kcal" if point.calories is not None else "N/A"
        lines.append(f"| {format_day(point.date)} | {point.strain:.1f} | {calories} |")

    lines += [
        "",
        "## Averages",
        f"- **Daily Strain**: {_avg([p.strain for p in trends]):.1f}",
        f"- **Daily Calories**: {int(_avg([p.calories for p in trends]) + 0.5)} kcal",
    ]

    if workouts:
        lines += [
            "",
            "## Workouts",
            "",
            "| Date | Sport | Strain | Duration | Avg HR |",
            "|------|-------|--------|----------|--------|",
        ]
        for workout in workouts:
            duration_ms = int((workout.end_time - workout.start_time).total_seconds() * 1000)
            lines.append(
                f"| {format_day(workout.start_time.date())} | {workout.sport_name or 'N/A'} "
                f"| {_fmt(workout.strain)} | {format_duration_ms(duration_ms)} "
                f"| {workout.avg_hr if workout.avg_hr is not None else 'N/A'} bpm |"
            )

    return "\n".join(lines) + "\n"


def render_sync_stats(stats: SyncStats) -> str:
    return (
        "Sync complete!\n"
        f"- Cycles: {stats.cycles}\n"
        f"- Recoveries: {stats.recoveries}\n"
        f"- Sleeps: {stats.sleeps}\n"
        f"- Workouts: {stats.workouts}"
    )


def render_auth_instructions(url: str, redirect_uri: str) -> str:
    return (
        "To authorize with Whoop:\n\n"
        f"1. Visit: {url}\n"
        "2. Log in and authorize\n"
        "3. You'll be redirected back automatically\n\n"
        f"Redirect URI: {redirect_uri}"
    )
