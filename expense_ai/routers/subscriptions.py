import json
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from expense_ai.auth import get_current_user
from expense_ai.config import get_settings
from expense_ai.database import User, get_db
from expense_ai.errors import AuthenticationError, ValidationError
from expense_ai.responses import ok
from expense_ai.schemas import RevenueCatWebhook, SubscriptionOut
from expense_ai.services.subscriptions import (
    cancel_subscription,
    get_active_subscription,
    process_webhook_event,
    verify_webhook_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook")
async def revenuecat_webhook(request: Request, db: Session = Depends(get_db)):
    body = await request.body()
    signature = request.headers.get("x-revenuecat-signature")
    if not verify_webhook_signature(body, signature, get_settings().revenuecat_webhook_secret):
        raise AuthenticationError("Invalid webhook signature")

    try:
        webhook = RevenueCatWebhook.model_validate(json.loads(body or b"null"))
    except (ValueError, PydanticValidationError) as e:
        logger.error(f"Invalid webhook payload: {e}")
        raise ValidationError("Invalid webhook payload")

    outcome = process_webhook_event(db, webhook.event)
    return ok("Webhook received", {"received": True, "result": outcome})


@router.get("/subscription-status")
async def subscription_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    subscription = get_active_subscription(db, current_user)
    data = SubscriptionOut.model_validate(subscription) if subscription else None
    return ok("Subscription status retrieved successfully", data)


@router.post("/cancel-subscription")
async def cancel(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    subscription = cancel_subscription(db, current_user)
    return ok(
        "Subscription cancelled successfully. Manage your subscription in the App Store or Google Play.",
        SubscriptionOut.model_validate(subscription),
    )
