from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from expense_ai.auth import get_current_user
from expense_ai.database import User, get_db
from expense_ai.errors import NotFoundError
from expense_ai.responses import ok
from expense_ai.services.notifications import send_test_notification
from expense_ai.services.preferences import get_preferences
from expense_ai.services.push import ExpoPushClient, get_push_client

router = APIRouter()


def _test(period: str, db: Session, user: User, push_client: ExpoPushClient) -> dict:
    prefs = get_preferences(db, user.id)
    if prefs is None:
        raise NotFoundError("User preferences not found")
    result = send_test_notification(db, push_client, prefs, period)
    return ok(f"Test {period} notification processed", result)


@router.post("/test-daily")
def test_daily_notification(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    push_client: ExpoPushClient = Depends(get_push_client),
):
    return _test("daily", db, current_user, push_client)


@router.post("/test-weekly")
def test_weekly_notification(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    push_client: ExpoPushClient = Depends(get_push_client),
):
    return _test("weekly", db, current_user, push_client)


@router.post("/test-monthly")
def test_monthly_notification(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    push_client: ExpoPushClient = Depends(get_push_client),
):
    return _test("monthly", db, current_user, push_client)
