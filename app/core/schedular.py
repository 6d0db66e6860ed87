import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.core.database import SessionLocal
from app.services.attempt import AttemptService
from app.services.notification import get_notification_dispatcher

logger = logging.getLogger(__name__)


def expire_overdue_attempts():
    """
    Scheduled task that moves overdue in-progress attempts to expired.
    Every access already expires lazily; this keeps reports current for
    candidates who simply walk away.
    """
    db = SessionLocal()
    try:
        service = AttemptService(db, notifier=get_notification_dispatcher())
        expired = service.expire_overdue(limit=settings.expiry_sweep_batch_size)
        logger.info(
            f"[{datetime.now(timezone.utc)}] Expiry sweep completed. "
            f"Expired {expired} attempt(s)."
        )
    except Exception as e:
        logger.error(f"Error during expiry sweep: {e}")
    finally:
        db.close()


def start_scheduler():
    """
    Initialize and start the APScheduler for the expiry sweep.
    """
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        expire_overdue_attempts,
        trigger=IntervalTrigger(seconds=settings.expiry_sweep_interval_seconds),
        id="attempt_expiry_sweep",
        name="Expire overdue test attempts",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(
        "Attempt expiry scheduler started "
        f"(every {settings.expiry_sweep_interval_seconds}s)."
    )

    return scheduler


def shutdown_scheduler(scheduler: AsyncIOScheduler):
    """
    Gracefully shutdown the scheduler.
    """
    if scheduler:
        scheduler.shutdown()
        logger.info("Attempt expiry scheduler shut down.")
