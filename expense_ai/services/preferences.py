from typing import Optional

from sqlalchemy.orm import Session

from expense_ai.database import UserPreferences

DEFAULT_DAILY_NOTIFICATION_TIME = 1260  # 21:00
DEFAULT_WEEKLY_NOTIFICATION_TIME = 600  # 10:00 on Sunday
DEFAULT_MONTHLY_NOTIFICATION_TIME = 600


def get_preferences(db: Session, user_id: int) -> Optional[UserPreferences]:
    return db.query(UserPreferences).filter(UserPreferences.user_id == user_id).first()


def get_or_create_preferences(db: Session, user_id: int) -> UserPreferences:
    prefs = get_preferences(db, user_id)
    if prefs is None:
        prefs = UserPreferences(
            user_id=user_id,
            notifications_enabled=False,
            daily_notifications=True,
            weekly_notifications=True,
            monthly_notifications=True,
            daily_notification_time=DEFAULT_DAILY_NOTIFICATION_TIME,
            weekly_notification_time=DEFAULT_WEEKLY_NOTIFICATION_TIME,
            monthly_notification_time=DEFAULT_MONTHLY_NOTIFICATION_TIME,
            currency="USD",
            onboarding_completed=False,
        )
        db.add(prefs)
        db.flush()
    return prefs


def budget_or_none(value: Optional[float]) -> Optional[float]:
    """A zero budget means no budget."""
    return value if value else None
