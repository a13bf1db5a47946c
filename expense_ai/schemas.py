import re
from datetime import date, datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field, constr, field_validator, model_validator

from expense_ai.timeutils import is_valid_timezone

NAME_PATTERN = re.compile(r"^[a-zA-Z\s\-']+$")
HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


def check_password_policy(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if len(value) > 128:
        raise ValueError("Password must not exceed 128 characters")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", value):
        raise ValueError("Password must contain at least one number")
    if not re.search(r"[^A-Za-z0-9]", value):
        raise ValueError("Password must contain at least one special character")
    return value


def check_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not 2 <= len(value) <= 50:
        raise ValueError("Name must be between 2 and 50 characters")
    if not NAME_PATTERN.match(value):
        raise ValueError("Name can only contain letters, spaces, hyphens, and apostrophes")
    return value


# --- Auth ---


class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    first_name: str
    last_name: str

    @field_validator("password")
    @classmethod
    def password_policy(cls, v: str) -> str:
        return check_password_policy(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def valid_name(cls, v: str) -> str:
        return check_name(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: constr(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: constr(min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class VerifyOTPRequest(BaseModel):
    email: EmailStr
    token: constr(min_length=6, max_length=10)


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    otp: constr(min_length=6, max_length=10)
    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def password_policy(cls, v: str) -> str:
        return check_password_policy(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class UpdateProfileRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def valid_name(cls, v: Optional[str]) -> Optional[str]:
        return check_name(v)


class UserOut(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    email_verified: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResult(TokenPair):
    user: UserOut


# --- Categories ---


class CategoryCreate(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=100)
    icon: constr(min_length=1, max_length=50) = "card-outline"
    color: constr(pattern=HEX_COLOR) = "#FFFFFF"


class CategoryUpdate(BaseModel):
    name: Optional[constr(strip_whitespace=True, min_length=1, max_length=100)] = None
    icon: Optional[constr(min_length=1, max_length=50)] = None
    color: Optional[constr(pattern=HEX_COLOR)] = None


class CategoryOut(BaseModel):
    id: int
    name: str
    icon: str
    color: str
    is_default: bool

    class Config:
        from_attributes = True


# --- Expenses ---


class ItemBreakdown(BaseModel):
    name: str = "Item"
    quantity: float = 1
    price: float = 0


class ExpenseCreate(BaseModel):
    amount: float = Field(..., gt=0, le=1_000_000_000)
    description: constr(strip_whitespace=True, min_length=1, max_length=255)
    # numeric id or a category name
    category_id: Union[int, str]
    expense_date: date
    notes: Optional[str] = None
    receipt_image: Optional[str] = None
    item_breakdowns: List[ItemBreakdown] = Field(default_factory=list)


class ExpenseUpdate(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0, le=1_000_000_000)
    description: Optional[constr(strip_whitespace=True, min_length=1, max_length=255)] = None
    category_id: Optional[Union[int, str]] = None
    expense_date: Optional[date] = None
    notes: Optional[str] = None
    receipt_image: Optional[str] = None
    item_breakdowns: Optional[List[ItemBreakdown]] = None


class ExpenseOut(BaseModel):
    id: int
    user_id: int
    amount: float
    description: str
    category_id: Optional[int] = None
    expense_date: date
    notes: Optional[str] = None
    receipt_image_url: Optional[str] = None
    item_breakdowns: List[ItemBreakdown] = Field(default_factory=list)
    category_name: Optional[str] = None
    category_icon: Optional[str] = None
    category_color: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UploadReceiptRequest(BaseModel):
    image: constr(min_length=1)


# --- Preferences ---


class BudgetFields(BaseModel):
    daily_budget: Optional[float] = Field(default=None, ge=0)
    weekly_budget: Optional[float] = Field(default=None, ge=0)
    monthly_budget: Optional[float] = Field(default=None, ge=0)


class OnboardingRequest(BudgetFields):
    notifications_enabled: bool = False
    currency: constr(min_length=3, max_length=3) = "USD"
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v):
        if v is not None and not is_valid_timezone(v):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class PreferencesUpdate(BudgetFields):
    notifications_enabled: Optional[bool] = None
    daily_notifications: Optional[bool] = None
    weekly_notifications: Optional[bool] = None
    monthly_notifications: Optional[bool] = None
    daily_notification_time: Optional[int] = Field(default=None, ge=0, le=1439)
    weekly_notification_time: Optional[int] = Field(default=None, ge=0, le=1439)
    monthly_notification_time: Optional[int] = Field(default=None, ge=0, le=1439)
    currency: Optional[constr(min_length=3, max_length=3)] = None
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v):
        if v is not None and not is_valid_timezone(v):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class PushTokenRequest(BaseModel):
    push_token: Optional[str] = None


class PreferencesOut(BaseModel):
    user_id: int
    daily_budget: Optional[float] = None
    weekly_budget: Optional[float] = None
    monthly_budget: Optional[float] = None
    notifications_enabled: bool
    daily_notifications: bool
    weekly_notifications: bool
    monthly_notifications: bool
    daily_notification_time: int
    weekly_notification_time: int
    monthly_notification_time: int
    currency: str
    timezone: str
    push_token: Optional[str] = None
    onboarding_completed: bool

    class Config:
        from_attributes = True


# --- Budget progress ---


class BudgetStatus(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    EXCEEDED = "exceeded"


class BudgetProgress(BaseModel):
    budget: float
    spent: float
    remaining: float
    percentage: int
    status: BudgetStatus


class SpendingProgress(BaseModel):
    daily: Optional[BudgetProgress] = None
    weekly: Optional[BudgetProgress] = None
    monthly: Optional[BudgetProgress] = None


# --- AI capture ---


class ProcessReceiptRequest(BaseModel):
    # base64 data URL or an http(s) URL
    image: constr(min_length=1)


class ProcessTextRequest(BaseModel):
    text: constr(strip_whitespace=True, min_length=1, max_length=2000)


class ProcessedExpense(BaseModel):
    amount: float = 0
    description: str
    category_id: Optional[int] = None
    notes: Optional[str] = None
    item_breakdowns: Optional[List[ItemBreakdown]] = None
    confidence: float = 0.5
    transcript: Optional[str] = None


# --- Subscriptions ---


class RevenueCatEvent(BaseModel):
    type: str
    app_user_id: str
    product_id: str = ""
    period_type: Optional[str] = None
    purchased_at_ms: Optional[int] = None
    expiration_at_ms: Optional[int] = None
    store: Literal["APP_STORE", "PLAY_STORE", "AMAZON", "MAC_APP_STORE"] = "APP_STORE"
    environment: Literal["SANDBOX", "PRODUCTION"] = "PRODUCTION"
    presented_offering_identifier: Optional[str] = None
    transaction_id: Optional[str] = None
    original_transaction_id: Optional[str] = None


class RevenueCatWebhook(BaseModel):
    event: RevenueCatEvent


class SubscriptionOut(BaseModel):
    id: int
    user_id: int
    revenuecat_user_id: str
    entitlement_id: str
    product_id: str
    store: str
    plan: str
    status: str
    current_period_start: datetime
    current_period_end: datetime
    cancelled_at: Optional[datetime] = None
    trial_end: Optional[datetime] = None

    class Config:
        from_attributes = True
