from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from expense_ai.config import get_settings
from expense_ai.timeutils import utcnow


def _make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = _make_engine(get_settings().database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(254), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(50), nullable=False, default="")
    last_name = Column(String(50), nullable=False, default="")
    email_verified = Column(Boolean, nullable=False, default=True)
    revenuecat_user_id = Column(String(255), index=True)
    reset_otp_hash = Column(String(255))
    reset_otp_expires_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("user_id", "name", name="categories_user_name_unique"),)
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(100), nullable=False)
    icon = Column(String(50), nullable=False, default="card-outline")
    color = Column(String(7), nullable=False, default="#FFFFFF")
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Expense(Base):
    __tablename__ = "expenses"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    amount = Column(Float, nullable=False)
    description = Column(String(255), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), index=True)
    expense_date = Column(Date, index=True, nullable=False)
    notes = Column(Text)
    receipt_image_url = Column(Text)
    item_breakdowns = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class UserPreferences(Base):
    __tablename__ = "user_preferences"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True, nullable=False
    )
    daily_budget = Column(Float)
    weekly_budget = Column(Float)
    monthly_budget = Column(Float)
    notifications_enabled = Column(Boolean, nullable=False, default=False)
    daily_notifications = Column(Boolean, nullable=False, default=True)
    weekly_notifications = Column(Boolean, nullable=False, default=True)
    monthly_notifications = Column(Boolean, nullable=False, default=True)
    # minutes from midnight in the user's timezone
    daily_notification_time = Column(Integer, nullable=False, default=1260)
    weekly_notification_time = Column(Integer, nullable=False, default=600)
    monthly_notification_time = Column(Integer, nullable=False, default=600)
    currency = Column(String(3), nullable=False, default="USD")
    timezone = Column(String(64), nullable=False, default="America/New_York", index=True)
    push_token = Column(Text)
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class NotificationLog(Base):
    __tablename__ = "notification_logs"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    notification_type = Column(String(20), nullable=False)
    sent_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    timezone = Column(String(64))
    notification_time = Column(Integer)


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (UniqueConstraint("user_id", "revenuecat_user_id", name="subscriptions_user_rc_unique"),)
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    revenuecat_user_id = Column(String(255), index=True, nullable=False)
    entitlement_id = Column(String(100), nullable=False, default="premium")
    product_id = Column(String(255), nullable=False)
    store = Column(String(50), nullable=False)
    plan = Column(String(50), nullable=False)
    status = Column(String(50), nullable=False, default="active", index=True)
    current_period_start = Column(DateTime(timezone=True), nullable=False)
    current_period_end = Column(DateTime(timezone=True), nullable=False)
    cancelled_at = Column(DateTime(timezone=True))
    trial_end = Column(DateTime(timezone=True))
    transaction_id = Column(String(255))
    original_transaction_id = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


def init_db(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
