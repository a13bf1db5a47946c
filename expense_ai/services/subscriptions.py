"""RevenueCat subscription state and the premium entitlement check."""
import hashlib
import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from expense_ai.auth import get_current_user
from expense_ai.database import Subscription, User, get_db
from expense_ai.errors import NotFoundError, SubscriptionRequiredError
from expense_ai.schemas import RevenueCatEvent
from expense_ai.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

ACTIVE_EVENTS = {"INITIAL_PURCHASE", "RENEWAL", "PRODUCT_CHANGE"}
CANCEL_EVENTS = {"CANCELLATION", "EXPIRATION"}
ENTITLED_STATUSES = ("active", "trialing")
DEFAULT_PERIOD = timedelta(days=30)


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """HMAC-SHA256 of the raw request body, hex encoded."""
    if not secret:
        return True
    if not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


def extract_plan(product_id: str) -> str:
    for plan in ("weekly", "monthly", "yearly"):
        if plan in product_id:
            return plan
    return "monthly"


def _from_ms(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def find_user(db: Session, app_user_id: str) -> Optional[User]:
    user = db.query(User).filter(User.revenuecat_user_id == app_user_id).first()
    if user is None and app_user_id.isdigit():
        user = db.query(User).filter(User.id == int(app_user_id)).first()
    return user


def activate_subscription(db: Session, user: User, event: RevenueCatEvent, now: datetime) -> Subscription:
    subscription = (
        db.query(Subscription)
        .filter(Subscription.user_id == user.id, Subscription.revenuecat_user_id == event.app_user_id)
        .first()
    )
    if subscription is None:
        subscription = Subscription(user_id=user.id, revenuecat_user_id=event.app_user_id)
        db.add(subscription)

    started = _from_ms(event.purchased_at_ms) or now
    subscription.entitlement_id = "premium"
    subscription.product_id = event.product_id
    subscription.store = "app_store" if event.store == "APP_STORE" else "play_store"
    subscription.plan = extract_plan(event.product_id)
    subscription.status = "active"
    subscription.current_period_start = started
    subscription.current_period_end = _from_ms(event.expiration_at_ms) or now + DEFAULT_PERIOD
    subscription.cancelled_at = None
    subscription.transaction_id = event.transaction_id
    subscription.original_transaction_id = event.original_transaction_id
    db.commit()
    logger.info(f"Subscription activated for user {user.id} ({subscription.plan})")
    return subscription


def _cancel_active(db: Session, query, now: datetime) -> int:
    updated = query.filter(Subscription.status == "active").update(
        {"status": "cancelled", "cancelled_at": now, "updated_at": now},
        synchronize_session=False,
    )
    db.commit()
    return updated


def process_webhook_event(db: Session, event: RevenueCatEvent, now: Optional[datetime] = None) -> str:
    """Apply one RevenueCat event. Returns what was done, for logging and tests."""
    now = now or utcnow()
    logger.info(f"Processing RevenueCat event: {event.type} for user: {event.app_user_id}")

    if event.type in ACTIVE_EVENTS:
        user = find_user(db, event.app_user_id)
        if user is None:
            logger.error(f"User not found for RevenueCat user ID: {event.app_user_id}")
            return "user_not_found"
        activate_subscription(db, user, event, now)
        return "activated"

    if event.type in CANCEL_EVENTS:
        query = db.query(Subscription).filter(Subscription.revenuecat_user_id == event.app_user_id)
        updated = _cancel_active(db, query, now)
        logger.info(f"Cancelled {updated} subscriptions for RevenueCat user: {event.app_user_id}")
        return "cancelled"

    if event.type == "UNCANCELLATION":
        values = {"status": "active", "cancelled_at": None, "updated_at": now}
        expires = _from_ms(event.expiration_at_ms)
        if expires is not None:
            values["current_period_end"] = expires
        db.query(Subscription).filter(Subscription.revenuecat_user_id == event.app_user_id).update(
            values, synchronize_session=False
        )
        db.commit()
        return "uncancelled"

    logger.info(f"Unhandled RevenueCat event type: {event.type}")
    return "ignored"


def get_active_subscription(db: Session, user: User, now: Optional[datetime] = None) -> Optional[Subscription]:
    """
    The user's newest entitled subscription.

    One whose period already ended is marked cancelled and not returned.
    """
    now = now or utcnow()
    subscription = (
        db.query(Subscription)
        .filter(
            Subscription.revenuecat_user_id == (user.revenuecat_user_id or str(user.id)),
            Subscription.status.in_(ENTITLED_STATUSES),
        )
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .first()
    )
    if subscription is None:
        return None
    if as_utc(subscription.current_period_end) <= as_utc(now):
        subscription.status = "cancelled"
        db.commit()
        logger.info(f"Subscription {subscription.id} expired for user {user.id}")
        return None
    return subscription


def cancel_subscription(db: Session, user: User, now: Optional[datetime] = None) -> Subscription:
    now = now or utcnow()
    subscription = get_active_subscription(db, user, now)
    if subscription is None:
        raise NotFoundError("No active subscription found")
    subscription.status = "cancelled"
    subscription.cancelled_at = now
    db.commit()
    db.refresh(subscription)
    return subscription


def require_active_subscription(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> User:
    if get_active_subscription(db, current_user) is None:
        raise SubscriptionRequiredError(details={"hasSubscription": False})
    return current_user
