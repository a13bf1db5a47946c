"""ExpenseAI backend: expenses, budgets and push notifications."""

__version__ = "1.0.0"
