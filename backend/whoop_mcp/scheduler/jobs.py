"""
Scheduled jobs
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from whoop_mcp.config import settings
from whoop_mcp.mcp.sessions import session_registry
from whoop_mcp.services.container import get_services

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")


async def sweep_idle_sessions_job():
    """Evict MCP sessions idle longer than SESSION_TTL_MINUTES"""
    try:
        evicted = await session_registry.sweep()
        if evicted:
            logger.info(f"Session sweep evicted: {', '.join(evicted)}")
    except Exception as e:
        logger.error(f"Session sweep failed: {str(e)}")


async def auto_sync_job():
    """Background smart sync (no-op without credentials)"""
    try:
        services = get_services()
        if not await services.load_tokens():
            logger.debug("Auto sync skipped: not authenticated")
            return
        result = await services.sync.smart_sync()
        logger.info(f"Auto sync finished: {result.type}")
    except Exception as e:
        logger.error(f"Auto sync failed: {str(e)}")


def register_jobs(sweep_sessions: bool = True):
    """
    Register jobs according to settings

    Args:
        sweep_sessions: register the idle-session sweep (HTTP mode only)
    """
    if sweep_sessions:
        scheduler.add_job(
            sweep_idle_sessions_job,
            IntervalTrigger(minutes=settings.SESSION_SWEEP_INTERVAL_MINUTES),
            id="sweep_idle_sessions",
            replace_existing=True,
        )

    if settings.AUTO_SYNC_INTERVAL_MINUTES > 0:
        scheduler.add_job(
            auto_sync_job,
            IntervalTrigger(minutes=settings.AUTO_SYNC_INTERVAL_MINUTES),
            id="auto_sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )


def start_scheduler(sweep_sessions: bool = True):
    """Start the scheduler"""
    try:
        register_jobs(sweep_sessions=sweep_sessions)
        scheduler.start()
        logger.info("Scheduler started")
        for job in scheduler.get_jobs():
            logger.info(f"  - {job.id}: {job.trigger}")
    except Exception as e:
        logger.error(f"Scheduler failed to start: {str(e)}")


def shutdown_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
