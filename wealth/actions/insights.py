"""
Insight actions.

These are keyed by the local user id rather than a Clerk session: the
monthly report job calls them for every user.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from wealth.actions.dashboard import month_bounds
from wealth.agents import AIConfigurationError, InsightAgent, fallback_insights, savings_rate
from wealth.audit import AuditLogger
from wealth.cache import revalidate_path
from wealth.models.audit import AuditEventBuilder
from wealth.models.finance import (
    MONTH_NAMES,
    ActionResult,
    FinancialInsight,
    InsightRequest,
    MonthlyStats,
    TransactionType,
)
from wealth.services.storage import InsightStorageInterface, TransactionStorageInterface


logger = structlog.get_logger(__name__)


def _money(value: float) -> Decimal:
    return Decimal(str(round(value, 2)))


def _month_name(month: Any) -> str:
    """Accept a month name in any case, or a month number."""
    if isinstance(month, int) or (isinstance(month, str) and month.strip().isdigit()):
        number = int(month)
        if 1 <= number <= 12:
            return MONTH_NAMES[number - 1]
    else:
        for name in MONTH_NAMES:
            if str(month).strip().lower() == name.lower():
                return name
    raise ValueError(f"Unknown month: {month}")


class InsightActions:
    """Monthly statistics and AI insights."""

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        insight_storage: InsightStorageInterface,
        insight_agent: Optional[InsightAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transactions = transaction_storage
        self._insights = insight_storage
        self._agent = insight_agent or InsightAgent()
        self._audit_logger = audit_logger

    async def get_monthly_stats(self, user_id: UUID, when: datetime) -> MonthlyStats:
        """Income, expenses and expenses per category for the month containing `when`."""
        start, end = month_bounds(when)
        transactions = await self._transactions.list_transactions(
            user_id, date_from=start, date_to=end
        )

        income = Decimal("0.00")
        expenses = Decimal("0.00")
        by_category: dict[str, Decimal] = defaultdict(lambda: Decimal("0.00"))
        for transaction in transactions:
            if transaction.type == TransactionType.EXPENSE:
                expenses += transaction.amount
                by_category[transaction.category] += transaction.amount
            else:
                income += transaction.amount

        return MonthlyStats(
            total_income=income,
            total_expenses=expenses,
            by_category={k: float(v) for k, v in by_category.items()},
            transaction_count=len(transactions),
        )

    async def generate_financial_insights(
        self,
        user_id: Optional[UUID],
        data: Union[InsightRequest, dict[str, Any]],
    ) -> ActionResult:
        """
        Generate, store and return insights for one month.

        Any failure after the input checks still succeeds, with an unsaved
        insight carrying templated advice.

        Raises:
            ValueError: If month, year or user id is missing
            AIConfigurationError: If no Gemini API key is configured
        """
        request = InsightRequest.model_validate(data)
        if not request.month or not request.year or not user_id:
            raise ValueError("Missing required fields")
        month = _month_name(request.month)
        request = request.model_copy(update={"month": month})

        if not self._agent.is_configured:
            raise AIConfigurationError("GEMINI_API_KEY not configured")

        net = request.total_income - request.total_expenses
        rate = savings_rate(request.total_income, request.total_expenses)

        try:
            insights = await self._agent.generate_insights(request)

            saved = await self._insights.upsert_insight(FinancialInsight(
                user_id=user_id,
                month=month,
                year=request.year,
                total_income=_money(request.total_income),
                total_expenses=_money(request.total_expenses),
                net_income=_money(net),
                savings_rate=rate,
                categories=request.categories,
                insights=insights,
            ))

            await self._log(AuditEventBuilder.insights_generated(
                user_id=user_id,
                insight_id=saved.id,
                month=month,
                year=request.year,
                fallback=False,
            ))
            revalidate_path("/dashboard/insights")
            return ActionResult.ok(saved)
        except Exception as e:
            logger.error(
                "insight_generation_failed",
                user_id=str(user_id),
                month=month,
                year=request.year,
                error=str(e),
            )

        fallback = FinancialInsight(
            user_id=user_id,
            month=month,
            year=request.year,
            total_income=_money(request.total_income),
            total_expenses=_money(request.total_expenses),
            net_income=_money(net),
            savings_rate=rate,
            categories=request.categories,
            insights=fallback_insights(
                request.total_income,
                request.total_expenses,
                self._agent.currency,
            ),
        )
        await self._log(AuditEventBuilder.insights_generated(
            user_id=user_id,
            insight_id=fallback.id,
            month=month,
            year=request.year,
            fallback=True,
        ))
        return ActionResult.ok(fallback)

    async def get_saved_insights(
        self,
        user_id: UUID,
        month: Union[str, int],
        year: int,
    ) -> Optional[FinancialInsight]:
        return await self._insights.get_insight(user_id, _month_name(month), year)

    async def get_all_user_insights(self, user_id: UUID) -> list[FinancialInsight]:
        """Every stored insight, latest month first."""
        return await self._insights.list_insights(user_id)

    async def _log(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)
