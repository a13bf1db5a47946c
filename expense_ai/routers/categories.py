import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from expense_ai.auth import get_current_user
from expense_ai.database import Category, Expense, User, get_db
from expense_ai.errors import DuplicateError, NotFoundError, ValidationError
from expense_ai.responses import ok
from expense_ai.schemas import CategoryCreate, CategoryOut, CategoryUpdate
from expense_ai.services.categories import get_or_create_fallback

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_owned_category(db: Session, user_id: int, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id, Category.user_id == user_id).first()
    if not category:
        raise NotFoundError("Category not found or access denied")
    return category


def _name_taken(db: Session, user_id: int, name: str, exclude_id: int = None) -> bool:
    query = db.query(Category.id).filter(Category.user_id == user_id, Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first() is not None


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if _name_taken(db, current_user.id, payload.name):
        raise DuplicateError("Category name already exists")

    category = Category(
        user_id=current_user.id,
        name=payload.name,
        icon=payload.icon,
        color=payload.color,
        is_default=False,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return ok("Category created successfully", CategoryOut.model_validate(category))


@router.put("/{category_id}")
async def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    category = _get_owned_category(db, current_user.id, category_id)
    if category.is_default:
        raise ValidationError("Cannot modify default categories")
    if payload.name and _name_taken(db, current_user.id, payload.name, exclude_id=category.id):
        raise DuplicateError("Category name already exists")

    if payload.name:
        category.name = payload.name
    if payload.icon:
        category.icon = payload.icon
    if payload.color:
        category.color = payload.color
    db.commit()
    db.refresh(category)
    return ok("Category updated successfully", CategoryOut.model_validate(category))


@router.delete("/{category_id}")
async def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    category = _get_owned_category(db, current_user.id, category_id)
    if category.is_default:
        raise ValidationError("Cannot delete default categories")

    fallback = get_or_create_fallback(db, current_user.id)
    moved = (
        db.query(Expense)
        .filter(Expense.user_id == current_user.id, Expense.category_id == category.id)
        .update({"category_id": fallback.id}, synchronize_session=False)
    )
    db.delete(category)
    db.commit()
    logger.info(f"Category {category_id} deleted for user {current_user.id}, {moved} expenses moved to {fallback.name}")
    return ok("Category deleted successfully", {"reassigned_expenses": moved})
