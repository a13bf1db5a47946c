import logging
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from expense_ai.config import get_settings
from expense_ai.database import SessionLocal
from expense_ai.services.notifications import (
    PushSender,
    cleanup_old_notification_logs,
    run_notification_check,
)
from expense_ai.services.push import ExpoPushClient

logger = logging.getLogger(__name__)


class NotificationScheduler:
    """
    Runs the budget notification check on a fixed UTC cron and prunes old
    notification logs once a day.

    Each tick opens its own session. A tick still running when the next one
    fires makes APScheduler skip the new one (max_instances=1).
    """

    def __init__(
        self,
        push_client: Optional[PushSender] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_minutes: Optional[int] = None,
        retention_days: Optional[int] = None,
    ):
        settings = get_settings()
        self.push_client = push_client or ExpoPushClient()
        self.session_factory = session_factory
        self.interval_minutes = interval_minutes or settings.notification_interval_minutes
        self.retention_days = retention_days or settings.notification_log_retention_days
        self.scheduler = BackgroundScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def check_notifications(self, now: Optional[datetime] = None) -> None:
        logger.info("Running notification check")
        with self.session_factory() as db:
            try:
                run_notification_check(db, self.push_client, now)
            except Exception:
                db.rollback()
                logger.exception("Notification check failed")

    def cleanup_logs(self) -> None:
        with self.session_factory() as db:
            try:
                cleanup_old_notification_logs(db, retention_days=self.retention_days)
            except Exception:
                db.rollback()
                logger.exception("Notification log cleanup failed")

    def start(self) -> None:
        if self.running:
            logger.warning("Notification scheduler already running")
            return

        self.scheduler.add_job(
            self.check_notifications,
            "cron",
            minute=f"*/{self.interval_minutes}",
            id="notification_check",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.cleanup_logs,
            "cron",
            hour=2,
            minute=0,
            id="notification_log_cleanup",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Notification scheduler started: checks every {self.interval_minutes} minutes (UTC)")

    def stop(self) -> None:
        if not self.running:
            return
        self.scheduler.shutdown(wait=False)
        logger.info("Notification scheduler stopped")
