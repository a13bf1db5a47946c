"""
Budget notification dispatch.

Each run walks the users that opted in for a period, checks whether the
period is due in the user's local time, and sends one push message with
the current budget progress. Users are processed one at a time and a
failure for one user never stops the batch. A notification log row per
sent message keeps a second run on the same local day from sending again.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol

from sqlalchemy.orm import Session

from expense_ai.database import NotificationLog, UserPreferences
from expense_ai.services.budget import PERIODS, calculate_spending_progress, render_message
from expense_ai.timeutils import as_utc, local_day_bounds, local_now, utcnow

logger = logging.getLogger(__name__)

DEFAULT_LOG_RETENTION_DAYS = 40
MONTHLY_NOTIFICATION_DAY = 28


class PushSender(Protocol):
    def send(self, token: str, title: str, body: str, data: Optional[dict[str, Any]] = None) -> bool:
        ...


@dataclass
class DispatchSummary:
    period: str
    candidates: int = 0
    due: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


def _columns(period: str):
    if period not in PERIODS:
        raise ValueError(f"Unknown notification period: {period}")
    return (
        getattr(UserPreferences, f"{period}_notifications"),
        getattr(UserPreferences, f"{period}_budget"),
        getattr(UserPreferences, f"{period}_notification_time"),
    )


def notification_candidates(
    db: Session,
    period: str,
    target_timezone: Optional[str] = None,
    target_hour: Optional[int] = None,
) -> list[UserPreferences]:
    """Users with notifications on, the period enabled, a budget set and a push token."""
    enabled, budget, time_column = _columns(period)
    query = db.query(UserPreferences).filter(
        UserPreferences.notifications_enabled.is_(True),
        enabled.is_(True),
        budget.isnot(None),
        UserPreferences.push_token.isnot(None),
        UserPreferences.push_token != "",
    )
    if target_timezone is not None and target_hour is not None:
        target_minutes = target_hour * 60
        query = query.filter(
            UserPreferences.timezone == target_timezone,
            time_column >= target_minutes,
            time_column < target_minutes + 60,
        )
    return query.order_by(UserPreferences.user_id).all()


def is_due(prefs: UserPreferences, period: str, now: datetime) -> bool:
    """
    Whether the period's notification should go out at `now` for this user.

    Daily: the configured time falls in the user's current local hour.
    Weekly: it is Sunday locally. Monthly: it is the 28th locally.
    """
    local = local_now(prefs.timezone, now)
    if period == "daily":
        hour_start = local.hour * 60
        return hour_start <= (prefs.daily_notification_time or 0) < hour_start + 60
    if period == "weekly":
        return local.weekday() == 6
    if period == "monthly":
        return local.day == MONTHLY_NOTIFICATION_DAY
    raise ValueError(f"Unknown notification period: {period}")


def already_sent_today(
    db: Session, user_id: int, period: str, now: datetime, timezone_name: Optional[str] = None
) -> bool:
    """Whether a log of this type exists for the user's current local day."""
    day_start, day_end = local_day_bounds(timezone_name, now)
    return (
        db.query(NotificationLog.id)
        .filter(
            NotificationLog.user_id == user_id,
            NotificationLog.notification_type == period,
            NotificationLog.sent_at >= day_start,
            NotificationLog.sent_at < day_end,
        )
        .first()
        is not None
    )


def record_sent(db: Session, prefs: UserPreferences, period: str, now: datetime) -> None:
    db.add(
        NotificationLog(
            user_id=prefs.user_id,
            notification_type=period,
            sent_at=as_utc(now),
            timezone=prefs.timezone,
            notification_time=getattr(prefs, f"{period}_notification_time"),
        )
    )
    db.commit()


def build_notification(db: Session, user_id: int, timezone_name: str, period: str, now: datetime):
    today = local_now(timezone_name, now).date()
    progress = calculate_spending_progress(db, user_id, today)
    title, body = render_message(progress, period)
    return progress, title, body


def dispatch_period(
    db: Session,
    push_client: PushSender,
    period: str,
    now: Optional[datetime] = None,
    target_timezone: Optional[str] = None,
    target_hour: Optional[int] = None,
) -> DispatchSummary:
    now = as_utc(now or utcnow())
    summary = DispatchSummary(period=period)

    users = notification_candidates(db, period, target_timezone, target_hour)
    summary.candidates = len(users)
    if not users:
        logger.info(f"No users found for {period} notifications")
        return summary

    logger.info(f"Checking {period} notifications for {len(users)} users")
    for prefs in users:
        user_id = prefs.user_id
        try:
            if not is_due(prefs, period, now):
                continue
            summary.due += 1

            if already_sent_today(db, user_id, period, now, prefs.timezone):
                logger.info(f"{period.capitalize()} notification already sent today for user {user_id}, skipping")
                summary.skipped += 1
                continue

            _, title, body = build_notification(db, user_id, prefs.timezone, period, now)
            delivered = push_client.send(
                prefs.push_token,
                title,
                body,
                {"type": f"{period}_budget", "userId": user_id, "timezone": prefs.timezone},
            )
            if delivered:
                record_sent(db, prefs, period, now)
                summary.sent += 1
            else:
                summary.failed += 1
        except Exception:
            db.rollback()
            summary.failed += 1
            logger.exception(f"Failed to send {period} notification to user {user_id}")

    logger.info(
        f"{period.capitalize()} notifications completed: {summary.sent} sent, "
        f"{summary.skipped} skipped, {summary.failed} failed"
    )
    return summary


def send_daily_notifications(db: Session, push_client: PushSender, now: Optional[datetime] = None, **filters) -> DispatchSummary:
    return dispatch_period(db, push_client, "daily", now, **filters)


def send_weekly_notifications(db: Session, push_client: PushSender, now: Optional[datetime] = None, **filters) -> DispatchSummary:
    return dispatch_period(db, push_client, "weekly", now, **filters)


def send_monthly_notifications(db: Session, push_client: PushSender, now: Optional[datetime] = None, **filters) -> DispatchSummary:
    return dispatch_period(db, push_client, "monthly", now, **filters)


def run_notification_check(
    db: Session, push_client: PushSender, now: Optional[datetime] = None
) -> list[DispatchSummary]:
    """One scheduler tick: daily, weekly and monthly, in that order."""
    summaries = []
    for period in PERIODS:
        try:
            summaries.append(dispatch_period(db, push_client, period, now))
        except Exception:
            db.rollback()
            logger.exception(f"{period.capitalize()} notifications job failed")
    return summaries


def cleanup_old_notification_logs(
    db: Session, now: Optional[datetime] = None, retention_days: int = DEFAULT_LOG_RETENTION_DAYS
) -> int:
    cutoff = as_utc(now or utcnow()) - timedelta(days=retention_days)
    deleted = (
        db.query(NotificationLog)
        .filter(NotificationLog.sent_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Cleaned up {deleted} notification logs older than {retention_days} days")
    return deleted


def send_test_notification(
    db: Session,
    push_client: PushSender,
    prefs: UserPreferences,
    period: str,
    now: Optional[datetime] = None,
) -> dict:
    """Render and, when a push token is registered, send a period's message right away."""
    now = as_utc(now or utcnow())
    progress, title, body = build_notification(db, prefs.user_id, prefs.timezone, period, now)

    sent = False
    if prefs.push_token:
        sent = push_client.send(
            prefs.push_token,
            title,
            body,
            {"type": f"{period}_budget", "userId": prefs.user_id, "test": True},
        )
    logger.info(f"[TEST] {period} notification for user {prefs.user_id}: sent={sent}")
    return {
        "notification_sent": sent,
        "notification_content": f"{title}: {body}",
        "title": title,
        "body": body,
        "progress": getattr(progress, period),
    }
