"""
Read-only aggregations behind the mobile app's screens.

Dates are evaluated against the user's local "today" so the dashboard and
analytics agree with the budget notifications.
"""
import logging
import math
from collections import defaultdict
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from expense_ai.database import Category, Expense
from expense_ai.schemas import ExpenseOut
from expense_ai.services.budget import calculate_spending_progress, total_spent
from expense_ai.services.categories import FALLBACK_CATEGORY
from expense_ai.services.preferences import get_preferences
from expense_ai.timeutils import local_now, month_bounds

logger = logging.getLogger(__name__)

RECENT_EXPENSES = 5
ANALYTICS_PERIODS = ("week", "month", "year")
SORT_COLUMNS = {"date": Expense.expense_date, "amount": Expense.amount}


def user_today(db: Session, user_id: int) -> date:
    prefs = get_preferences(db, user_id)
    return local_now(prefs.timezone if prefs else None).date()


def _expenses_with_category(db: Session, user_id: int):
    return (
        db.query(Expense, Category)
        .outerjoin(Category, Expense.category_id == Category.id)
        .filter(Expense.user_id == user_id)
    )


def expense_out(expense: Expense, category: Optional[Category]) -> ExpenseOut:
    result = ExpenseOut.model_validate(expense)
    if category is not None:
        result.category_name = category.name
        result.category_icon = category.icon
        result.category_color = category.color
    return result


def _money(value: float) -> float:
    return round(value, 2)


def get_dashboard(
    db: Session, user_id: int, month: Optional[int] = None, year: Optional[int] = None, today: Optional[date] = None
) -> dict:
    today = today or user_today(db, user_id)
    target = date(year or today.year, month or today.month, 1)
    start, end = month_bounds(target)

    rows = (
        _expenses_with_category(db, user_id)
        .filter(Expense.expense_date >= start, Expense.expense_date <= end)
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
        .all()
    )
    total = sum(expense.amount for expense, _ in rows)
    categories_count = db.query(Category.id).filter(Category.user_id == user_id).count()

    calendar_data = defaultdict(list)
    for expense, category in rows:
        calendar_data[expense.expense_date.isoformat()].append(
            {
                "id": expense.id,
                "amount": expense.amount,
                "description": expense.description,
                "category_name": category.name if category else FALLBACK_CATEGORY,
                "category_icon": category.icon if category else "card-outline",
            }
        )

    recent = (
        _expenses_with_category(db, user_id)
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
        .limit(RECENT_EXPENSES)
        .all()
    )
    recent_expenses = [
        {
            "id": expense.id,
            "amount": expense.amount,
            "description": expense.description,
            "category": expense.category_id,
            "category_name": category.name if category else FALLBACK_CATEGORY,
            "category_icon": category.icon if category else "card-outline",
            "date": expense.expense_date.isoformat(),
        }
        for expense, category in recent
    ]

    budget_progress = None
    if get_preferences(db, user_id) is not None:
        budget_progress = calculate_spending_progress(db, user_id, today)

    return {
        "monthly_stats": {
            "total": _money(total),
            "expense_count": len(rows),
            "avg_daily": _money(total / end.day) if rows else 0,
            "categories_count": categories_count,
        },
        "recent_expenses": recent_expenses,
        "calendar_data": dict(calendar_data),
        "budget_progress": budget_progress,
    }


def get_expenses_screen(
    db: Session,
    user_id: int,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    category: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    sort_by: str = "date",
    sort_order: str = "desc",
) -> dict:
    query = _expenses_with_category(db, user_id)
    if search:
        query = query.filter(Expense.description.ilike(f"%{search}%"))
    if category is not None:
        query = query.filter(Expense.category_id == category)
    if start_date:
        query = query.filter(Expense.expense_date >= start_date)
    if end_date:
        query = query.filter(Expense.expense_date <= end_date)

    total_items = query.count()
    column = SORT_COLUMNS.get(sort_by, Expense.expense_date)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    rows = query.order_by(ordering, Expense.id.desc()).offset((page - 1) * limit).limit(limit).all()

    expenses = [expense_out(expense, cat) for expense, cat in rows]
    categories = db.query(Category).filter(Category.user_id == user_id).order_by(Category.name).all()
    total_pages = math.ceil(total_items / limit) if limit else 0

    return {
        "expenses": expenses,
        "categories": [
            {"id": c.id, "name": c.name, "icon": c.icon, "color": c.color} for c in categories
        ],
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_items": total_items,
            "has_more": page < total_pages,
        },
        "summary": {
            "total_expenses": total_items,
            "filtered_total": _money(sum(e.amount for e in expenses)),
        },
    }


def analytics_window(period: str, today: date) -> tuple[date, date, date, date]:
    """Current (start, end) and previous (start, end) for an analytics period."""
    if period == "week":
        start = today - timedelta(days=6)
        return start, today, start - timedelta(days=7), today - timedelta(days=7)
    if period == "year":
        start = date(today.year, 1, 1)
        return start, today, date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)
    start, _ = month_bounds(today)
    prev_start, prev_end = month_bounds(today - relativedelta(months=1))
    return start, today, prev_start, prev_end


def format_change(current: float, previous: float) -> str:
    change = (current - previous) / previous * 100 if previous > 0 else 0.0
    return f"+{change:.1f}%" if change >= 0 else f"{change:.1f}%"


def spending_trends(period: str, today: date, rows: list[tuple[date, float]]) -> dict:
    def total(start: date, end: date) -> float:
        return _money(sum(amount for day, amount in rows if start <= day <= end))

    labels, data = [], []
    if period == "week":
        for offset in range(6, -1, -1):
            day = today - timedelta(days=offset)
            labels.append(day.strftime("%a"))
            data.append(total(day, day))
    elif period == "month":
        month_start, month_end = month_bounds(today)
        weeks = math.ceil(month_end.day / 7)
        for week in range(1, weeks + 1):
            start = month_start + timedelta(days=(week - 1) * 7)
            end = month_end if week == weeks else start + timedelta(days=6)
            labels.append(f"Week {week}")
            data.append(total(start, end))
    else:
        for month in range(1, 13):
            start, end = month_bounds(date(today.year, month, 1))
            labels.append(start.strftime("%b"))
            data.append(total(start, end))
    return {"labels": labels, "data": data}


def comparison_series(db: Session, user_id: int, period: str, today: date) -> dict:
    labels, data = [], []
    if period == "week":
        for i in range(3, -1, -1):
            start = today - timedelta(days=i * 7 + 6)
            end = today - timedelta(days=i * 7)
            labels.append(start.strftime("%a"))
            data.append(_money(total_spent(db, user_id, start, end)))
    elif period == "month":
        for i in range(5, -1, -1):
            start, end = month_bounds(today - relativedelta(months=i))
            labels.append(start.strftime("%b"))
            data.append(_money(total_spent(db, user_id, start, end)))
    else:
        for i in range(2, -1, -1):
            year = today.year - i
            labels.append(str(year))
            data.append(_money(total_spent(db, user_id, date(year, 1, 1), date(year, 12, 31))))
    return {"labels": labels, "data": data}


def get_analytics(db: Session, user_id: int, period: str = "month", today: Optional[date] = None) -> dict:
    if period not in ANALYTICS_PERIODS:
        period = "month"
    today = today or user_today(db, user_id)
    start, end, prev_start, prev_end = analytics_window(period, today)

    rows = (
        _expenses_with_category(db, user_id)
        .filter(Expense.expense_date >= start, Expense.expense_date <= end)
        .all()
    )
    current_total = sum(expense.amount for expense, _ in rows)
    previous_total = total_spent(db, user_id, prev_start, prev_end)
    change = format_change(current_total, previous_total)
    days = (end - start).days + 1

    breakdown = {}
    for expense, category in rows:
        key = category.id if category else None
        entry = breakdown.setdefault(
            key,
            {
                "category_id": key,
                "category_name": category.name if category else FALLBACK_CATEGORY,
                "category_icon": category.icon if category else "card-outline",
                "category_color": category.color if category else "#FFFFFF",
                "amount": 0.0,
                "expense_count": 0,
            },
        )
        entry["amount"] += expense.amount
        entry["expense_count"] += 1

    category_breakdown = sorted(breakdown.values(), key=lambda e: e["amount"], reverse=True)
    for entry in category_breakdown:
        entry["percentage"] = round(entry["amount"] / current_total * 100, 1) if current_total > 0 else 0
        entry["amount"] = _money(entry["amount"])

    total_categories = db.query(Category.id).filter(Category.user_id == user_id).count()
    return {
        "period": period,
        "summary": {
            "this_month": {"total": _money(current_total), "change": change},
            "avg_daily": {"amount": _money(current_total / days), "change": change},
            "total_categories": total_categories,
            "total_transactions": len(rows),
            "top_category": category_breakdown[0]["category_name"] if category_breakdown else "None",
        },
        "spending_trends": spending_trends(
            period, today, [(expense.expense_date, expense.amount) for expense, _ in rows]
        ),
        "category_breakdown": category_breakdown,
        "monthly_comparison": comparison_series(db, user_id, period, today),
    }


def get_categories(db: Session, user_id: int) -> list[Category]:
    return db.query(Category).filter(Category.user_id == user_id).order_by(Category.name).all()
