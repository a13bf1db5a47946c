"""
Budget progress: spend against the daily, weekly and monthly budgets.

Windows are evaluated against the user's local date:
daily is today, weekly runs from the most recent Sunday through today,
monthly is the calendar month containing today.
"""
import logging
import math
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from expense_ai.database import Expense
from expense_ai.errors import NotFoundError
from expense_ai.schemas import BudgetProgress, BudgetStatus, SpendingProgress
from expense_ai.services.preferences import get_preferences
from expense_ai.timeutils import month_bounds, week_start

logger = logging.getLogger(__name__)

PERIODS = ("daily", "weekly", "monthly")
WARNING_RATIO = 0.8


def classify_status(spent: float, budget: float) -> BudgetStatus:
    if spent >= budget:
        return BudgetStatus.EXCEEDED
    if spent >= budget * WARNING_RATIO:
        return BudgetStatus.WARNING
    return BudgetStatus.SAFE


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def build_progress(spent: float, budget: float) -> BudgetProgress:
    spent = round(spent, 2)
    return BudgetProgress(
        budget=budget,
        spent=spent,
        remaining=round(max(0.0, budget - spent), 2),
        percentage=min(100, _round_half_up(spent / budget * 100)),
        status=classify_status(spent, budget),
    )


def period_window(period: str, today: date) -> tuple[date, date]:
    if period == "daily":
        return today, today
    if period == "weekly":
        return week_start(today), today
    if period == "monthly":
        return month_bounds(today)
    raise ValueError(f"Unknown budget period: {period}")


def sum_between(rows: Iterable[tuple[date, float]], start: date, end: date) -> float:
    return sum(float(amount) for day, amount in rows if start <= day <= end)


def fetch_expense_rows(db: Session, user_id: int, start: date, end: date) -> list[tuple[date, float]]:
    return [
        (expense_date, amount)
        for expense_date, amount in db.query(Expense.expense_date, Expense.amount).filter(
            Expense.user_id == user_id,
            Expense.expense_date >= start,
            Expense.expense_date <= end,
        )
    ]


def progress_from_budgets(
    budgets: dict[str, Optional[float]],
    rows: list[tuple[date, float]],
    today: date,
) -> SpendingProgress:
    result = {}
    for period in PERIODS:
        budget = budgets.get(period)
        if not budget:
            result[period] = None
            continue
        start, end = period_window(period, today)
        result[period] = build_progress(sum_between(rows, start, end), budget)
    return SpendingProgress(**result)


def calculate_spending_progress(db: Session, user_id: int, today: date) -> SpendingProgress:
    """Spend vs budget for every configured period, as of `today`."""
    prefs = get_preferences(db, user_id)
    if prefs is None:
        raise NotFoundError("User preferences not found")

    month_start, month_end = month_bounds(today)
    # the current week can start in the previous month
    rows = fetch_expense_rows(db, user_id, min(week_start(today), month_start), month_end)
    budgets = {
        "daily": prefs.daily_budget,
        "weekly": prefs.weekly_budget,
        "monthly": prefs.monthly_budget,
    }
    return progress_from_budgets(budgets, rows, today)


def total_spent(db: Session, user_id: int, start: date, end: date) -> float:
    total = (
        db.query(func.coalesce(func.sum(Expense.amount), 0.0))
        .filter(
            Expense.user_id == user_id,
            Expense.expense_date >= start,
            Expense.expense_date <= end,
        )
        .scalar()
    )
    return float(total or 0.0)


EMOJI = {"daily": "🌙", "weekly": "📊", "monthly": "📈"}


def _money(value: float) -> str:
    return f"${value:,.2f}"


def render_message(progress: SpendingProgress, period: str) -> tuple[str, str]:
    """Title and body of the push notification for one budget period."""
    data: Optional[BudgetProgress] = getattr(progress, period)
    label = period.capitalize()
    if data is None:
        return f"{label} Reminder", f"Check your {period} spending progress!"

    title = f"{EMOJI[period]} {label} Budget"
    if data.status == BudgetStatus.EXCEEDED:
        title += " - Exceeded!"
        body = (
            f"⚠️ You've exceeded your {period} budget! "
            f"Spent {_money(data.spent)} of {_money(data.budget)}"
        )
    elif data.status == BudgetStatus.WARNING:
        title += " - Warning"
        body = (
            f"🔶 You've spent {_money(data.spent)} of your {_money(data.budget)} "
            f"{period} budget ({data.percentage}%)"
        )
    else:
        title += " - On Track"
        if period == "daily":
            body = f"💰 You have {_money(data.remaining)} remaining in your daily budget. Sleep well!"
        elif period == "weekly":
            body = (
                f"💰 Weekly budget remaining: {_money(data.remaining)} of "
                f"{_money(data.budget)}. Great job!"
            )
        else:
            body = (
                f"💰 Monthly budget remaining: {_money(data.remaining)} of "
                f"{_money(data.budget)}. Keep it up!"
            )
    return title, body
