"""
Actions: authenticated operations behind every page and route.
"""

from wealth.actions.accounts import AccountActions
from wealth.actions.base import UnauthorizedError, UserActions, UserNotFoundError
from wealth.actions.dashboard import DashboardActions, month_bounds
from wealth.actions.insights import InsightActions
from wealth.actions.transactions import (
    TransactionActions,
    calculate_next_recurring_date,
)

__all__ = [
    "AccountActions",
    "DashboardActions",
    "InsightActions",
    "TransactionActions",
    "UserActions",
    "UnauthorizedError",
    "UserNotFoundError",
    "calculate_next_recurring_date",
    "month_bounds",
]
