import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select

from config import get_settings
from database import session_scope
from models import Profile
from services import NotificationService, get_current_user_id


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_notification_checks(source: str = "manual") -> int:
    """Evaluate notification triggers for every profile. Rules are never advanced here."""
    logger.info(f"notification_run: source={source}")
    created = 0
    with session_scope() as session:
        user_ids = session.scalars(select(Profile.user_id)).all() or [get_current_user_id()]
        for user_id in user_ids:
            service = NotificationService(session, user_id)
            try:
                created += service.run_all_checks()
                service.flush_outbox()
            except Exception:
                session.rollback()
                logger.exception(f"notification_run_failed: source={source} user={user_id}")
    logger.info(f"notification_run: source={source} created={created}")
    return created


class SchedulerManager:
    def __init__(self) -> None:
        self.settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=self.settings.timezone)

    def _run_job(self, source: str = "manual") -> None:
        try:
            run_notification_checks(source)
        except Exception:
            logger.exception(f"notification_job_failed: source={source}")

    def start(self) -> None:
        self._run_job("startup")

        hour = self.settings.notification_hour
        trigger = CronTrigger(hour=hour, minute=0)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=[f"daily_{hour:02d}:00"],
            id="notifications_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with daily notification checks at {hour:02d}:00")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
