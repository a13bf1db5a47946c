import logging
import secrets
from datetime import timedelta
from typing import Optional

import jwt
from fastapi import APIRouter, Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from expense_ai.config import get_settings
from expense_ai.database import (
    Category,
    Expense,
    NotificationLog,
    Subscription,
    User,
    UserPreferences,
    get_db,
)
from expense_ai.errors import (
    AppError,
    AuthenticationError,
    DuplicateError,
    InvalidTokenError,
    ValidationError,
)
from expense_ai.limiter import limiter
from expense_ai.responses import ok
from expense_ai.schemas import (
    AuthResult,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    ResetPasswordRequest,
    SignupRequest,
    TokenPair,
    UpdateProfileRequest,
    UserOut,
    VerifyOTPRequest,
)
from expense_ai.services.categories import create_default_categories
from expense_ai.services.preferences import get_or_create_preferences
from expense_ai.services.storage import delete_receipt
from expense_ai.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"

auth_router = APIRouter()
users_router = APIRouter()
bearer_scheme = HTTPBearer(auto_error=False)

def auth_rate_limit() -> str:
    return get_settings().auth_rate_limit


def password_reset_rate_limit() -> str:
    return get_settings().password_reset_rate_limit


def create_token(user: User, kind: str = ACCESS) -> str:
    settings = get_settings()
    if kind == ACCESS:
        secret, lifetime = settings.jwt_secret, timedelta(days=settings.access_token_expire_days)
    else:
        secret, lifetime = settings.jwt_refresh_secret, timedelta(days=settings.refresh_token_expire_days)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "type": kind,
        "exp": utcnow() + lifetime,
    }
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def create_token_pair(user: User) -> TokenPair:
    return TokenPair(access_token=create_token(user, ACCESS), refresh_token=create_token(user, REFRESH))


def decode_token(token: str, kind: str = ACCESS) -> dict:
    settings = get_settings()
    secret = settings.jwt_secret if kind == ACCESS else settings.jwt_refresh_secret
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise InvalidTokenError("Token has expired")
    except jwt.InvalidTokenError:
        raise InvalidTokenError("Invalid or expired access token")

    if payload.get("type") != kind or not str(payload.get("sub", "")).isdigit():
        raise InvalidTokenError("Invalid or expired access token")
    return payload


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token is required")

    payload = decode_token(credentials.credentials, ACCESS)
    user = db.query(User).filter(User.id == int(payload["sub"])).first()
    if user is None:
        raise InvalidTokenError("Invalid or expired access token")
    return user


def _issue_reset_otp(db: Session, user: User) -> str:
    otp = f"{secrets.randbelow(1_000_000):06d}"
    user.reset_otp_hash = generate_password_hash(otp)
    user.reset_otp_expires_at = utcnow() + timedelta(minutes=get_settings().otp_expire_minutes)
    db.commit()
    return otp


def _check_reset_otp(user: Optional[User], otp: str) -> None:
    if user is None or not user.reset_otp_hash or not user.reset_otp_expires_at:
        raise ValidationError("Invalid or expired OTP", code="INVALID_OTP")
    if as_utc(user.reset_otp_expires_at) < utcnow():
        raise ValidationError("Invalid or expired OTP", code="INVALID_OTP")
    if not check_password_hash(user.reset_otp_hash, otp):
        raise ValidationError("Invalid or expired OTP", code="INVALID_OTP")


@auth_router.post("/signup", status_code=status.HTTP_201_CREATED)
@limiter.limit(auth_rate_limit)
async def signup(request: Request, payload: SignupRequest, db: Session = Depends(get_db)):
    email = payload.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise DuplicateError("An account with this email already exists")

    user = User(
        email=email,
        password_hash=generate_password_hash(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        email_verified=True,
    )
    db.add(user)
    db.flush()
    user.revenuecat_user_id = str(user.id)

    create_default_categories(db, user.id)
    get_or_create_preferences(db, user.id)
    db.commit()
    db.refresh(user)
    logger.info(f"New account created for user {user.id}")

    tokens = create_token_pair(user)
    result = AuthResult(user=UserOut.model_validate(user), **tokens.model_dump())
    return ok("Account created successfully", result)


@auth_router.post("/login")
@limiter.limit(auth_rate_limit)
async def login(request: Request, payload: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if not user or not check_password_hash(user.password_hash, payload.password):
        raise AuthenticationError("Invalid email or password")

    if not user.revenuecat_user_id:
        user.revenuecat_user_id = str(user.id)
        db.commit()

    tokens = create_token_pair(user)
    result = AuthResult(user=UserOut.model_validate(user), **tokens.model_dump())
    return ok("Login successful", result)


@auth_router.post("/refresh")
async def refresh_token(payload: RefreshRequest, db: Session = Depends(get_db)):
    try:
        claims = decode_token(payload.refresh_token, REFRESH)
    except InvalidTokenError:
        raise AuthenticationError("Invalid refresh token")

    user = db.query(User).filter(User.id == int(claims["sub"])).first()
    if user is None:
        raise AuthenticationError("Invalid refresh token")
    return ok("Tokens refreshed successfully", create_token_pair(user))


@auth_router.post("/logout")
async def logout():
    # tokens are stateless; the client discards them
    return ok("Logout successful")


@auth_router.post("/forgot-password")
@limiter.limit(password_reset_rate_limit)
async def forgot_password(request: Request, payload: ForgotPasswordRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if user is not None:
        otp = _issue_reset_otp(db, user)
        if get_settings().is_development:
            logger.info(f"Password reset OTP for user {user.id}: {otp}")
        else:
            logger.info(f"Password reset OTP issued for user {user.id}")
    else:
        logger.info("Password reset requested for unknown email")
    return ok("Password reset OTP sent to your email")


@auth_router.post("/verify-otp")
@limiter.limit(auth_rate_limit)
async def verify_otp(request: Request, payload: VerifyOTPRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    _check_reset_otp(user, payload.token)
    return ok("OTP verified successfully", {"valid": True})


@auth_router.post("/reset-password")
async def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    _check_reset_otp(user, payload.otp)

    user.password_hash = generate_password_hash(payload.password)
    user.reset_otp_hash = None
    user.reset_otp_expires_at = None
    db.commit()
    logger.info(f"Password reset for user {user.id}")
    return ok("Password reset successful")


@auth_router.get("/health")
async def auth_health():
    return ok("Auth service is healthy", {"timestamp": utcnow().isoformat()})


@auth_router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)):
    return ok("Profile retrieved successfully", UserOut.model_validate(current_user))


def _update_profile(payload: UpdateProfileRequest, user: User, db: Session) -> UserOut:
    if payload.first_name is not None:
        user.first_name = payload.first_name
    if payload.last_name is not None:
        user.last_name = payload.last_name
    db.commit()
    db.refresh(user)
    return UserOut.model_validate(user)


@auth_router.put("/profile")
async def update_profile(
    payload: UpdateProfileRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok("Profile updated successfully", _update_profile(payload, current_user, db))


@users_router.put("/profile")
async def update_user_profile(
    payload: UpdateProfileRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok("User profile updated successfully", _update_profile(payload, current_user, db))


@auth_router.delete("/account")
async def delete_account(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user_id = current_user.id
    receipts = [
        url
        for (url,) in db.query(Expense.receipt_image_url).filter(
            Expense.user_id == user_id, Expense.receipt_image_url.isnot(None)
        )
    ]
    try:
        for model in (NotificationLog, Subscription, Expense, Category, UserPreferences):
            db.query(model).filter(model.user_id == user_id).delete(synchronize_session=False)
        db.delete(current_user)
        db.commit()
    except Exception as e:
        db.rollback()
        raise AppError("Account deletion failed", code="ACCOUNT_DELETE_ERROR") from e

    for url in receipts:
        delete_receipt(url)
    logger.info(f"Deleted account for user {user_id}")
    return ok("Account deleted successfully")
