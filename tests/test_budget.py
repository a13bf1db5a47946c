from datetime import date, datetime, timedelta, timezone

import pytest

from expense_ai.database import Expense
from expense_ai.errors import NotFoundError
from expense_ai.schemas import BudgetStatus, SpendingProgress
from expense_ai.services.budget import (
    build_progress,
    calculate_spending_progress,
    classify_status,
    period_window,
    render_message,
)
from expense_ai.timeutils import local_day_bounds, month_bounds, week_start


def add_expense(db, user, amount, day):
    db.add(Expense(user_id=user.id, amount=amount, description="Test", expense_date=day))
    db.commit()


class TestClassifyStatus:
    """Threshold rules: exceeded at 100%, warning from 80%."""

    def test_below_warning_is_safe(self):
        assert classify_status(79.99, 100) == BudgetStatus.SAFE

    def test_eighty_percent_is_warning(self):
        assert classify_status(80, 100) == BudgetStatus.WARNING

    def test_exactly_budget_is_exceeded(self):
        assert classify_status(100, 100) == BudgetStatus.EXCEEDED

    def test_over_budget_is_exceeded(self):
        assert classify_status(150, 100) == BudgetStatus.EXCEEDED


class TestBuildProgress:
    def test_warning_example(self):
        """Budget 50 with 42.50 spent."""
        progress = build_progress(42.50, 50)
        assert progress.status == BudgetStatus.WARNING
        assert progress.remaining == pytest.approx(7.50)
        assert progress.percentage == 85
        assert progress.spent == pytest.approx(42.50)

    def test_percentage_capped_and_remaining_floored(self):
        progress = build_progress(120, 100)
        assert progress.percentage == 100
        assert progress.remaining == 0
        assert progress.status == BudgetStatus.EXCEEDED

    def test_percentage_rounds_half_up(self):
        # 1 / 8 = 12.5%
        assert build_progress(1, 8).percentage == 13

    def test_nothing_spent(self):
        progress = build_progress(0, 30)
        assert progress.percentage == 0
        assert progress.remaining == 30
        assert progress.status == BudgetStatus.SAFE


class TestWindows:
    def test_week_starts_on_sunday(self):
        # 2024-06-12 is a Wednesday
        assert week_start(date(2024, 6, 12)) == date(2024, 6, 9)

    def test_sunday_starts_its_own_week(self):
        assert week_start(date(2024, 6, 9)) == date(2024, 6, 9)

    def test_saturday_belongs_to_previous_sunday(self):
        assert week_start(date(2024, 6, 15)) == date(2024, 6, 9)

    def test_month_bounds_leap_february(self):
        assert month_bounds(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_local_day_bounds(self):
        # 01:05 UTC on 2024-06-12 is still 2024-06-11 in New York (UTC-4)
        start, end = local_day_bounds("America/New_York", datetime(2024, 6, 12, 1, 5, tzinfo=timezone.utc))
        assert start == datetime(2024, 6, 11, 4, 0, tzinfo=timezone.utc)
        assert end == datetime(2024, 6, 12, 4, 0, tzinfo=timezone.utc)

    def test_local_day_bounds_across_dst_change(self):
        start, end = local_day_bounds("America/New_York", datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc))
        assert end - start == timedelta(hours=23)

    def test_period_windows(self):
        today = date(2024, 6, 12)
        assert period_window("daily", today) == (today, today)
        assert period_window("weekly", today) == (date(2024, 6, 9), today)
        assert period_window("monthly", today) == (date(2024, 6, 1), date(2024, 6, 30))


class TestCalculateSpendingProgress:
    """Spend is summed per window and compared against each configured budget."""

    def test_sums_each_window(self, db, make_user):
        user = make_user(daily_budget=50, weekly_budget=200, monthly_budget=1000)
        today = date(2024, 6, 12)
        add_expense(db, user, 20, today)
        add_expense(db, user, 22.50, today)
        add_expense(db, user, 30, date(2024, 6, 10))
        add_expense(db, user, 100, date(2024, 6, 2))
        add_expense(db, user, 999, date(2024, 5, 31))

        progress = calculate_spending_progress(db, user.id, today)

        assert progress.daily.spent == pytest.approx(42.50)
        assert progress.daily.status == BudgetStatus.WARNING
        assert progress.weekly.spent == pytest.approx(72.50)
        assert progress.monthly.spent == pytest.approx(172.50)

    def test_week_spanning_previous_month(self, db, make_user):
        user = make_user(weekly_budget=100)
        # Tuesday 2024-10-01; the week started Sunday 2024-09-29
        add_expense(db, user, 40, date(2024, 9, 29))
        add_expense(db, user, 10, date(2024, 9, 28))

        progress = calculate_spending_progress(db, user.id, date(2024, 10, 1))

        assert progress.weekly.spent == pytest.approx(40)

    def test_unset_budgets_are_none(self, db, make_user):
        user = make_user(daily_budget=25)
        progress = calculate_spending_progress(db, user.id, date(2024, 6, 12))
        assert progress.daily is not None
        assert progress.weekly is None
        assert progress.monthly is None

    def test_other_users_expenses_ignored(self, db, make_user):
        user = make_user(daily_budget=10)
        other = make_user()
        add_expense(db, other, 500, date(2024, 6, 12))
        progress = calculate_spending_progress(db, user.id, date(2024, 6, 12))
        assert progress.daily.spent == 0

    def test_missing_preferences(self, db):
        with pytest.raises(NotFoundError):
            calculate_spending_progress(db, 12345, date(2024, 6, 12))


class TestRenderMessage:
    def test_exceeded(self):
        progress = SpendingProgress(daily=build_progress(60, 50))
        title, body = render_message(progress, "daily")
        assert title == "🌙 Daily Budget - Exceeded!"
        assert "Spent $60.00 of $50.00" in body

    def test_warning_includes_percentage(self):
        progress = SpendingProgress(weekly=build_progress(42.50, 50))
        title, body = render_message(progress, "weekly")
        assert title == "📊 Weekly Budget - Warning"
        assert "(85%)" in body

    def test_on_track(self):
        progress = SpendingProgress(monthly=build_progress(100, 1000))
        title, body = render_message(progress, "monthly")
        assert title == "📈 Monthly Budget - On Track"
        assert "$900.00 of $1,000.00" in body

    def test_no_budget_falls_back_to_reminder(self):
        title, body = render_message(SpendingProgress(), "daily")
        assert title == "Daily Reminder"
        assert body == "Check your daily spending progress!"
