import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from expense_ai.auth import get_current_user
from expense_ai.database import Category, Expense, User, get_db
from expense_ai.errors import NotFoundError
from expense_ai.responses import ok
from expense_ai.schemas import ExpenseCreate, ExpenseOut, ExpenseUpdate, UploadReceiptRequest
from expense_ai.services.categories import resolve_category_id
from expense_ai.services.storage import DATA_URL, delete_receipt, save_receipt

logger = logging.getLogger(__name__)

router = APIRouter()


def _receipt_url(user_id: int, image: Optional[str]) -> Optional[str]:
    """Inline images are stored; URLs are kept as given."""
    if not image:
        return None
    if DATA_URL.match(image.strip()):
        return save_receipt(user_id, image)["image_url"]
    return image


def _get_owned_expense(db: Session, user_id: int, expense_id: int) -> Expense:
    expense = db.query(Expense).filter(Expense.id == expense_id, Expense.user_id == user_id).first()
    if not expense:
        raise NotFoundError("Expense not found")
    return expense


def _with_category(db: Session, expense: Expense) -> ExpenseOut:
    result = ExpenseOut.model_validate(expense)
    if expense.category_id is not None:
        category = db.query(Category).filter(Category.id == expense.category_id).first()
        if category:
            result.category_name = category.name
            result.category_icon = category.icon
            result.category_color = category.color
    return result


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_expense(
    payload: ExpenseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    category_id = resolve_category_id(db, current_user.id, payload.category_id)
    expense = Expense(
        user_id=current_user.id,
        amount=payload.amount,
        description=payload.description,
        category_id=category_id,
        expense_date=payload.expense_date,
        notes=payload.notes,
        receipt_image_url=_receipt_url(current_user.id, payload.receipt_image),
        item_breakdowns=[item.model_dump() for item in payload.item_breakdowns],
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)
    logger.info(f"Expense {expense.id} created for user {current_user.id}")
    return ok("Expense created successfully", _with_category(db, expense))


@router.put("/{expense_id}")
async def update_expense(
    expense_id: int,
    payload: ExpenseUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = _get_owned_expense(db, current_user.id, expense_id)
    changes = payload.model_dump(exclude_unset=True)

    if changes.get("category_id") is not None:
        expense.category_id = resolve_category_id(db, current_user.id, changes["category_id"])
    for field in ("amount", "description", "expense_date", "notes"):
        if field in changes and (changes[field] is not None or field == "notes"):
            setattr(expense, field, changes[field])
    if "item_breakdowns" in changes:
        expense.item_breakdowns = changes["item_breakdowns"] or []
    if "receipt_image" in changes:
        new_url = _receipt_url(current_user.id, changes["receipt_image"])
        if new_url != expense.receipt_image_url:
            delete_receipt(expense.receipt_image_url)
        expense.receipt_image_url = new_url

    db.commit()
    db.refresh(expense)
    return ok("Expense updated successfully", _with_category(db, expense))


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = _get_owned_expense(db, current_user.id, expense_id)
    receipt = expense.receipt_image_url
    db.delete(expense)
    db.commit()
    delete_receipt(receipt)
    return ok("Expense deleted successfully")


@router.post("/upload-receipt")
async def upload_receipt(
    payload: UploadReceiptRequest,
    current_user: User = Depends(get_current_user),
):
    stored = save_receipt(current_user.id, payload.image)
    return ok("Receipt image uploaded successfully", stored)
