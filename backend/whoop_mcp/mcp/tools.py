"""
MCP Tools Implementation

Each tool is a thin wrapper over an implementation function that takes the
shared services, so the logic can be exercised without a protocol session.
"""
import functools
import logging
import math
import re
from datetime import timedelta
from typing import Any, Optional, Union

from fastmcp.exceptions import ToolError

from whoop_mcp.services.container import WhoopServices, get_services

from . import formatting
from .server import mcp

logger = logging.getLogger(__name__)

DEFAULT_DAYS = 14
MAX_DAYS = 90


# ============ Argument helpers ============

def validate_days(value: Any) -> int:
    """
    Normalize a days argument into [1, 90]

    Missing, unparsable or < 1 values fall back to 14.
    """
    if value is None:
        return DEFAULT_DAYS

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        num = value
    else:
        match = re.match(r"\s*([+-]?\d+)", str(value))
        if not match:
            return DEFAULT_DAYS
        num = int(match.group(1))

    if isinstance(num, float) and math.isnan(num):
        return DEFAULT_DAYS
    if num < 1:
        return DEFAULT_DAYS
    return int(min(num, MAX_DAYS))


def validate_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return value == "true"


def tool_errors(func):
    """Re-raise any failure as a ToolError carrying "Error: ..." text"""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> str:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Tool {func.__name__} failed: {str(e)}")
            raise ToolError(f"Error: {str(e) or type(e).__name__}") from e

    return wrapper


async def prepare_data_query(services: WhoopServices) -> Optional[str]:
    """
    Load credentials and refresh the cache before a data query

    Returns:
        a response to send instead of querying (not authenticated), else None
    """
    if not await services.load_tokens():
        return formatting.NOT_AUTHENTICATED_MESSAGE

    try:
        await services.sync.smart_sync()
    except Exception as e:
        logger.warning(f"Opportunistic sync failed, serving cached data: {str(e)}")
    return None


# ============ Tool implementations ============

@tool_errors
async def today_summary(services: WhoopServices) -> str:
    blocked = await prepare_data_query(services)
    if blocked:
        return blocked

    recovery = await services.store.get_latest_recovery()
    sleep = await services.store.get_latest_sleep()
    cycle = await services.store.get_latest_cycle()
    return formatting.render_today(recovery, sleep, cycle)


@tool_errors
async def recovery_trends(services: WhoopServices, days: Any = None) -> str:
    blocked = await prepare_data_query(services)
    if blocked:
        return blocked

    days = validate_days(days)
    trends = await services.store.get_recovery_trends(days)
    return formatting.render_recovery_trends(days, trends)


@tool_errors
async def sleep_analysis(services: WhoopServices, days: Any = None) -> str:
    blocked = await prepare_data_query(services)
    if blocked:
        return blocked

    days = validate_days(days)
    trends = await services.store.get_sleep_trends(days)
    return formatting.render_sleep_trends(days, trends)


@tool_errors
async def strain_history(services: WhoopServices, days: Any = None) -> str:
    blocked = await prepare_data_query(services)
    if blocked:
        return blocked

    days = validate_days(days)
    now = services.store.clock()
    trends = await services.store.get_strain_trends(days, now=now)
    workouts = await services.store.get_workouts_by_date_range(now - timedelta(days=days), now)
    return formatting.render_strain_history(days, trends, workouts)


@tool_errors
async def manual_sync(services: WhoopServices, full: Any = None) -> str:
    """Explicit sync; upstream errors are reported, not swallowed"""
    if not await services.load_tokens():
        return formatting.NOT_AUTHENTICATED_MESSAGE

    if validate_boolean(full):
        stats = await services.sync.full_sync()
    else:
        result = await services.sync.smart_sync()
        if result.type == "skip":
            return formatting.UP_TO_DATE_MESSAGE
        stats = result.stats

    return formatting.render_sync_stats(stats)


@tool_errors
async def auth_url(services: WhoopServices) -> str:
    url = services.client.get_authorization_url()
    return formatting.render_auth_instructions(url, services.client.redirect_uri)


# ============ MCP Tools ============

@mcp.tool
async def get_today() -> str:
    """
    Get today's Whoop data including recovery score, last night's sleep, and current strain.
    """
    return await today_summary(get_services())


@mcp.tool
async def get_recovery_trends(days: Optional[Union[float, str]] = None) -> str:
    """
    Get recovery score trends over time, including HRV and resting heart rate patterns.

    Args:
        days: Number of days to analyze (default: 14, max: 90)
    """
    return await recovery_trends(get_services(), days)


@mcp.tool
async def get_sleep_analysis(days: Optional[Union[float, str]] = None) -> str:
    """
    Get detailed sleep analysis including duration, stages, efficiency, and sleep debt.

    Args:
        days: Number of days to analyze (default: 14, max: 90)
    """
    return await sleep_analysis(get_services(), days)


@mcp.tool
async def get_strain_history(days: Optional[Union[float, str]] = None) -> str:
    """
    Get training strain history and workout data.

    Args:
        days: Number of days to analyze (default: 14, max: 90)
    """
    return await strain_history(get_services(), days)


@mcp.tool
async def sync_data(full: Optional[Union[bool, str]] = None) -> str:
    """
    Manually trigger a data sync from Whoop.

    Args:
        full: Force a full 90-day sync (default: false)
    """
    return await manual_sync(get_services(), full)


@mcp.tool
async def get_auth_url() -> str:
    """
    Get the Whoop authorization URL to connect your account.
    """
    return await auth_url(get_services())
