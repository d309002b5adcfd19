"""
Dashboard and budget actions.
"""

import calendar
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from wealth.actions.base import BaseActions
from wealth.audit import AuditLogger
from wealth.cache import revalidate_path
from wealth.models.audit import AuditEventBuilder
from wealth.models.finance import ActionResult, BudgetInput, CurrentBudget, Transaction
from wealth.services.storage import (
    AccountStorageInterface,
    BudgetStorageInterface,
    NotFoundError,
    TransactionStorageInterface,
    UserStorageInterface,
)


def month_bounds(when: datetime) -> tuple[datetime, datetime]:
    """First and last instant of the calendar month containing `when`."""
    start = when.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_day = calendar.monthrange(when.year, when.month)[1]
    end = when.replace(day=last_day, hour=23, minute=59, second=59, microsecond=999999)
    return start, end


class DashboardActions(BaseActions):
    """Data behind the dashboard: transactions and the monthly budget."""

    def __init__(
        self,
        user_storage: UserStorageInterface,
        account_storage: AccountStorageInterface,
        transaction_storage: TransactionStorageInterface,
        budget_storage: BudgetStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(user_storage, audit_logger)
        self._accounts = account_storage
        self._transactions = transaction_storage
        self._budgets = budget_storage

    async def get_dashboard_data(self, clerk_user_id: Optional[str]) -> list[Transaction]:
        """All of the user's transactions, newest first."""
        user = await self._require_user(clerk_user_id)
        return await self._transactions.list_transactions(user.id)

    async def get_current_budget(
        self,
        clerk_user_id: Optional[str],
        account_id: UUID,
        now: Optional[datetime] = None,
    ) -> CurrentBudget:
        """
        The user's budget and this month's expenses on `account_id`.

        Raises:
            NotFoundError: If the account is missing or not the user's
        """
        user = await self._require_user(clerk_user_id)
        if await self._accounts.get_account(account_id, user.id) is None:
            raise NotFoundError("Account not found")

        budget = await self._budgets.get_budget(user.id)
        start, end = month_bounds(now or datetime.utcnow())
        expenses = await self._transactions.sum_expenses(account_id, start, end)

        return CurrentBudget(budget=budget, current_expenses=expenses)

    async def update_budget(
        self,
        clerk_user_id: Optional[str],
        amount: Union[Decimal, float, str],
    ) -> ActionResult:
        user = await self._require_user(clerk_user_id)
        try:
            payload = BudgetInput(amount=Decimal(str(amount)))
            budget = await self._budgets.upsert_budget(user.id, payload.amount)

            await self._audit(AuditEventBuilder.budget_updated(
                user_id=user.id,
                budget_id=budget.id,
                amount=str(budget.amount),
            ))
            revalidate_path("/dashboard")
            return ActionResult.ok(budget)
        except Exception as e:
            return await self._failed("update_budget", e, user.id)
