import logging
from datetime import timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from cinerank.config import Settings
from cinerank.exceptions import BackfillAlreadyRunning
from cinerank.services.backfill_service import EmbeddingBackfillService

_SCHEDULER: Optional[AsyncIOScheduler] = None
logger = logging.getLogger(__name__)


def _get_scheduler() -> AsyncIOScheduler:
    global _SCHEDULER
    if _SCHEDULER is None:
        _SCHEDULER = AsyncIOScheduler(timezone=timezone.utc)
    return _SCHEDULER


async def run_scheduled_backfill(service: EmbeddingBackfillService, batch_size: int) -> None:
    try:
        result = await service.backfill(batch_size)
    except BackfillAlreadyRunning:
        logger.info("Skipping scheduled backfill, a run is already in progress")
        return
    logger.info(
        "Scheduled backfill finished: status=%s processed=%d failed=%d remaining=%d",
        result.status,
        result.processed,
        result.failed,
        result.remaining,
    )


def start_scheduler(service: EmbeddingBackfillService, settings: Settings) -> bool:
    """Schedule periodic backfill runs. Returns False when disabled."""
    if not settings.BACKFILL_SCHEDULE_ENABLED:
        return False
    if settings.BACKFILL_INTERVAL_MINUTES < 1:
        logger.warning(
            "Invalid BACKFILL_INTERVAL_MINUTES '%s', scheduled backfill disabled",
            settings.BACKFILL_INTERVAL_MINUTES,
        )
        return False

    scheduler = _get_scheduler()
    scheduler.add_job(
        run_scheduled_backfill,
        trigger="interval",
        minutes=settings.BACKFILL_INTERVAL_MINUTES,
        args=[service, settings.BACKFILL_BATCH_SIZE],
        id="embedding-backfill",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if not scheduler.running:
        scheduler.start()
    logger.info("Scheduled embedding backfill every %d minutes", settings.BACKFILL_INTERVAL_MINUTES)
    return True


def stop_scheduler() -> None:
    scheduler = _get_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=False)
