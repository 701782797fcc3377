"""
Scheduler: periodic POS reconciliation.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from app.services.db_service import AsyncSessionLocal
from app.services.pos_client import pos_client
from app.services.pos_sync_service import sync_from_pos
from app.utils.config import settings
import logging

logger = logging.getLogger(__name__)
scheduler = AsyncIOScheduler()


async def pos_sync_job(mode: str = "both"):
    """Reconcile the catalog with the POS in a fresh session."""
    if not pos_client.is_configured():
        logger.info("POS sync skipped: POS integration is not configured")
        return None
    try:
        async with AsyncSessionLocal() as session:
            report = await sync_from_pos(session, mode=mode)
        logger.info(
            f"Scheduled POS sync completed: items={report.get('items')}, "
            f"orders={report.get('orders')}, errors={len(report['errors'])}"
        )
        return report
    except Exception as e:
        logger.error(f"Scheduled POS sync failed: {e}")
        return None


def configure_scheduler() -> bool:
    """Register jobs from settings. Returns False when nothing is scheduled."""
    if not settings.POS_SYNC_CRON:
        logger.info("Scheduler not configured: POS_SYNC_CRON is empty")
        return False
    scheduler.add_job(pos_sync_job, CronTrigger.from_crontab(settings.POS_SYNC_CRON),
                      id="pos_sync", name="POS Sync", replace_existing=True,
                      max_instances=1, coalesce=True)
    logger.info(f"Scheduler configured: pos_sync ({settings.POS_SYNC_CRON})")
    return True


def start_scheduler():
    """Start the scheduler."""
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started.")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler shutdown.")
