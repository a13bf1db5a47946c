"""Default categories and category lookup helpers."""
import logging
from typing import Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from expense_ai.database import Category
from expense_ai.errors import ValidationError

logger = logging.getLogger(__name__)

FALLBACK_CATEGORY = "Other"

DEFAULT_CATEGORIES = [
    {"name": "Food & Drink", "icon": "restaurant-outline", "color": "#FF6B6B"},
    {"name": "Transport", "icon": "car-outline", "color": "#4ECDC4"},
    {"name": "Shopping", "icon": "bag-outline", "color": "#45B7D1"},
    {"name": "Entertainment", "icon": "play-circle-outline", "color": "#96CEB4"},
    {"name": "Groceries", "icon": "basket-outline", "color": "#FFEAA7"},
    {"name": "Utilities", "icon": "flash-outline", "color": "#DDA0DD"},
    {"name": "Healthcare", "icon": "medical-outline", "color": "#98D8C8"},
    {"name": FALLBACK_CATEGORY, "icon": "card-outline", "color": "#F7DC6F"},
]

CATEGORY_ALIASES = {
    "food": "Food & Drink",
    "transport": "Transport",
    "shopping": "Shopping",
    "entertainment": "Entertainment",
    "groceries": "Groceries",
    "utilities": "Utilities",
    "healthcare": "Healthcare",
    "other": FALLBACK_CATEGORY,
}


def create_default_categories(db: Session, user_id: int) -> int:
    """Give a new user the default categories. Users that already have categories are left alone."""
    existing = db.query(Category.id).filter(Category.user_id == user_id).first()
    if existing:
        return 0

    for category in DEFAULT_CATEGORIES:
        db.add(Category(user_id=user_id, is_default=True, **category))
    db.flush()
    logger.info(f"Created default categories for user {user_id}")
    return len(DEFAULT_CATEGORIES)


def get_or_create_fallback(db: Session, user_id: int) -> Category:
    other = (
        db.query(Category)
        .filter(Category.user_id == user_id, Category.name == FALLBACK_CATEGORY)
        .first()
    )
    if other:
        return other

    other = Category(
        user_id=user_id,
        name=FALLBACK_CATEGORY,
        icon="card-outline",
        color="#F7DC6F",
        is_default=True,
    )
    db.add(other)
    db.flush()
    return other


def resolve_category_id(db: Session, user_id: int, identifier: Union[int, str]) -> int:
    """
    Map a category id or name to one of the user's category ids.

    Lookup order: exact id, case-insensitive name match, partial name
    match, then the alias table for the default categories.
    """
    user_categories = db.query(Category).filter(Category.user_id == user_id)

    text = str(identifier).strip()
    if text.isdigit():
        category = user_categories.filter(Category.id == int(text)).first()
        if category:
            return category.id

    category = user_categories.filter(func.lower(Category.name) == text.lower()).first()
    if category:
        return category.id

    if text:
        category = (
            user_categories.filter(Category.name.ilike(f"%{text}%")).order_by(Category.id).first()
        )
        if category:
            return category.id

    mapped = CATEGORY_ALIASES.get(text.lower())
    if mapped:
        category = user_categories.filter(Category.name == mapped).first()
        if category:
            return category.id

    raise ValidationError(f"Category not found: {identifier}")
