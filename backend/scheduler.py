"""
APScheduler configuration for scheduled jobs
"""
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import text

from jobs.process_override_queue import run_process_override_queue
from database import SyncSessionLocal

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def get_config_value(key: str, default: str = None) -> str:
    """Get a config value from system_config"""
    db = SyncSessionLocal()
    try:
        result = db.execute(
            text("SELECT config_value FROM system_config WHERE config_key = :key"),
            {"key": key}
        )
        row = result.fetchone()
        if row and row.config_value:
            return row.config_value
        return default
    except Exception as e:
        logger.error(f"Error getting config {key}: {e}")
        return default
    finally:
        db.close()


def is_sync_enabled(source: str) -> bool:
    """Check if a sync source is enabled in config"""
    value = get_config_value(f"sync_{source}_enabled")
    if value:
        return value.lower() in ('true', '1', 'yes', 'enabled')
    return False


def get_interval_seconds(source: str, default: int = 60) -> int:
    value = get_config_value(f"sync_{source}_interval_seconds")
    if value:
        try:
            return max(int(value), 10)
        except ValueError:
            logger.warning(f"Invalid interval for {source}: {value}, using default")
    return default


async def run_scheduled_override_queue():
    """Wrapper to check if the override queue is enabled before running"""
    if is_sync_enabled("override_queue"):
        await run_process_override_queue()
    else:
        logger.debug("Scheduled override queue run skipped (disabled in settings)")


def start_scheduler():
    """Register jobs and start the scheduler"""
    interval = get_interval_seconds("override_queue", 60)
    scheduler.add_job(
        run_scheduled_override_queue,
        IntervalTrigger(seconds=interval),
        id="override_queue",
        name=f"Override Queue ({interval}s)",
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )
    logger.info(f"  Override queue scheduled every {interval}s")

    scheduler.start()
    logger.info("Scheduler started")


def shutdown_scheduler():
    """Shutdown the scheduler"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown")
