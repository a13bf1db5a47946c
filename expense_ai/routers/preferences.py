import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from expense_ai.auth import get_current_user
from expense_ai.database import User, get_db
from expense_ai.errors import ValidationError
from expense_ai.responses import ok
from expense_ai.schemas import OnboardingRequest, PreferencesOut, PreferencesUpdate, PushTokenRequest
from expense_ai.services.budget import calculate_spending_progress
from expense_ai.services.preferences import budget_or_none, get_or_create_preferences, get_preferences
from expense_ai.services.push import ExpoPushClient
from expense_ai.timeutils import local_now

logger = logging.getLogger(__name__)

router = APIRouter()

BUDGET_FIELDS = ("daily_budget", "weekly_budget", "monthly_budget")


@router.get("")
async def get_user_preferences(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    created = get_preferences(db, current_user.id) is None
    prefs = get_or_create_preferences(db, current_user.id)
    db.commit()
    message = "Default preferences created" if created else "User preferences retrieved successfully"
    return ok(message, PreferencesOut.model_validate(prefs))


@router.put("")
async def update_user_preferences(
    payload: PreferencesUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    prefs = get_or_create_preferences(db, current_user.id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field in BUDGET_FIELDS:
            setattr(prefs, field, budget_or_none(value))
        elif value is not None:
            setattr(prefs, field, value)
    db.commit()
    db.refresh(prefs)
    return ok("Preferences updated successfully", PreferencesOut.model_validate(prefs))


@router.post("/onboarding/complete")
async def complete_onboarding(
    payload: OnboardingRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    prefs = get_or_create_preferences(db, current_user.id)
    if prefs.onboarding_completed:
        raise ValidationError("Onboarding has already been completed")

    prefs.daily_budget = budget_or_none(payload.daily_budget)
    prefs.weekly_budget = budget_or_none(payload.weekly_budget)
    prefs.monthly_budget = budget_or_none(payload.monthly_budget)
    prefs.notifications_enabled = payload.notifications_enabled
    prefs.currency = payload.currency or "USD"
    if payload.timezone:
        prefs.timezone = payload.timezone
    prefs.onboarding_completed = True
    db.commit()
    db.refresh(prefs)
    logger.info(f"Onboarding completed for user {current_user.id}")
    return ok("Onboarding completed successfully", PreferencesOut.model_validate(prefs))


@router.get("/spending-progress")
async def get_spending_progress(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    prefs = get_preferences(db, current_user.id)
    today = local_now(prefs.timezone if prefs else None).date()
    progress = calculate_spending_progress(db, current_user.id, today)
    return ok("Spending progress retrieved successfully", progress)


@router.post("/push-token")
async def update_push_token(
    payload: PushTokenRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    token = (payload.push_token or "").strip() or None
    if token is not None and not ExpoPushClient.is_push_token(token):
        raise ValidationError("Invalid Expo push token")

    prefs = get_or_create_preferences(db, current_user.id)
    prefs.push_token = token
    db.commit()
    logger.info(f"Push token {'registered' if token else 'cleared'} for user {current_user.id}")
    return ok("Push token updated successfully", {"push_token": token})
