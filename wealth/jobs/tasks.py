"""
Background Job Bodies

DESIGN DECISION: The scheduled work is plain async methods over the
storage interfaces. The Inngest functions only wrap them in steps, so
every job can run (and be tested) without the scheduler.

Each run gets a correlation id so all audit events of one run can be
found together.
"""

import calendar
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

import structlog

from wealth.actions.dashboard import month_bounds
from wealth.actions.insights import InsightActions
from wealth.agents import AIConfigurationError, fallback_insights, savings_rate
from wealth.audit import AuditLogger, create_correlation_id
from wealth.config import get_settings
from wealth.models.audit import AuditEvent, AuditEventBuilder
from wealth.models.finance import (
    MONTH_NAMES,
    FinancialInsight,
    InsightRequest,
    Transaction,
)
from wealth.services.notifications import (
    NotifierInterface,
    budget_alert_notification,
    monthly_report_notification,
)
from wealth.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    InsightStorageInterface,
    TransactionStorageInterface,
    UserStorageInterface,
)


logger = structlog.get_logger(__name__)


def subtract_months(when: datetime, months: int) -> datetime:
    """Same day `months` earlier, clamped to the end of shorter months."""
    index = when.year * 12 + (when.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(when.day, calendar.monthrange(year, month)[1])
    return when.replace(year=year, month=month, day=day)


def is_new_month(last: datetime, now: datetime) -> bool:
    return last.month != now.month or last.year != now.year


class JobTasks:
    """
    The work behind every scheduled function.
    """

    def __init__(
        self,
        user_storage: UserStorageInterface,
        account_storage: AccountStorageInterface,
        transaction_storage: TransactionStorageInterface,
        budget_storage: BudgetStorageInterface,
        insight_storage: InsightStorageInterface,
        insight_actions: InsightActions,
        notifier: NotifierInterface,
        audit_storage: Optional[AuditStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._users = user_storage
        self._accounts = account_storage
        self._transactions = transaction_storage
        self._budgets = budget_storage
        self._insights = insight_storage
        self._insight_actions = insight_actions
        self._notifier = notifier
        self._audit_storage = audit_storage
        self._audit_logger = audit_logger
        self._settings = get_settings().inngest

    async def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    # -------------------------------------------------------------------------
    # Recurring transactions
    # -------------------------------------------------------------------------

    async def trigger_recurring_transactions(
        self,
        now: Optional[datetime] = None,
    ) -> list[dict[str, str]]:
        """
        Find due recurring transactions.

        Returns:
            One `transaction.recurring.process` event payload per due
            transaction
        """
        now = now or datetime.utcnow()
        due = await self._transactions.list_due_recurring_transactions(now)
        logger.info("recurring_transactions_due", count=len(due))
        return [
            {"transactionId": str(t.id), "userId": str(t.user_id)}
            for t in due
        ]

    async def process_recurring_transaction(
        self,
        transaction_id: UUID,
        user_id: UUID,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        """
        Create the next occurrence of a recurring transaction.

        Returns:
            The new occurrence, or None when the template is gone, no
            longer recurring, or not due yet
        """
        now = now or datetime.utcnow()
        template = await self._transactions.get_transaction(transaction_id, user_id)
        if template is None or not template.is_recurring or template.recurring_interval is None:
            logger.info("recurring_transaction_skipped", transaction_id=str(transaction_id), reason="not recurring")
            return None

        if template.next_recurring_date is not None and template.next_recurring_date > now:
            logger.info("recurring_transaction_skipped", transaction_id=str(transaction_id), reason="not due")
            return None

        occurrence = Transaction(
            user_id=template.user_id,
            account_id=template.account_id,
            type=template.type,
            amount=template.amount,
            description=f"{template.description or ''} (Recurring)".strip(),
            date=now,
            category=template.category,
        )
        created = await self._transactions.record_recurring_occurrence(
            template.id,
            occurrence,
            next_recurring_date=template.recurring_interval.next_date(now),
            processed_at=now,
        )
        if created is None:
            logger.info("recurring_transaction_skipped", transaction_id=str(transaction_id), reason="already processed")
            return None

        await self._audit(AuditEventBuilder.recurring_processed(
            user_id=template.user_id,
            template_id=template.id,
            occurrence_id=created.id,
            correlation_id=correlation_id,
        ))
        return created

    # -------------------------------------------------------------------------
    # Monthly reports
    # -------------------------------------------------------------------------

    async def generate_monthly_reports(self, now: Optional[datetime] = None) -> int:
        """
        Send every user last month's report.

        Returns:
            Number of reports sent
        """
        now = now or datetime.utcnow()
        last_month = now.replace(day=1) - timedelta(days=1)
        month = MONTH_NAMES[last_month.month - 1]
        correlation_id = create_correlation_id()

        sent = 0
        for user in await self._users.list_users():
            try:
                stats = await self._insight_actions.get_monthly_stats(user.id, last_month)
                request = InsightRequest(
                    month=month,
                    year=last_month.year,
                    total_income=float(stats.total_income),
                    total_expenses=float(stats.total_expenses),
                    categories=stats.by_category,
                )

                try:
                    result = await self._insight_actions.generate_financial_insights(user.id, request)
                    insight = result.data
                except AIConfigurationError:
                    insight = FinancialInsight(
                        user_id=user.id,
                        month=month,
                        year=last_month.year,
                        total_income=stats.total_income,
                        total_expenses=stats.total_expenses,
                        net_income=stats.net_income,
                        savings_rate=savings_rate(request.total_income, request.total_expenses),
                        categories=stats.by_category,
                        insights=fallback_insights(request.total_income, request.total_expenses),
                    )

                if await self._notifier.send(monthly_report_notification(user, insight)):
                    sent += 1
                    await self._audit(AuditEventBuilder.monthly_report_sent(
                        user_id=user.id,
                        month=month,
                        year=last_month.year,
                        correlation_id=correlation_id,
                    ))
            except Exception as e:
                logger.error("monthly_report_failed", user_id=str(user.id), error=str(e))
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        "monthly_report_failed", str(e), {"user_id": str(user.id)}, correlation_id
                    )

        logger.info("monthly_reports_sent", month=month, year=last_month.year, sent=sent)
        return sent

    # -------------------------------------------------------------------------
    # Budget alerts
    # -------------------------------------------------------------------------

    async def check_budget_alerts(self, now: Optional[datetime] = None) -> int:
        """
        Alert users whose default account has used most of the budget.

        At most one alert per budget per calendar month.

        Returns:
            Number of alerts sent
        """
        now = now or datetime.utcnow()
        start, end = month_bounds(now)
        threshold = self._settings.budget_alert_threshold_percent
        correlation_id = create_correlation_id()

        sent = 0
        for budget in await self._budgets.list_budgets():
            try:
                account = await self._accounts.get_default_account(budget.user_id)
                if account is None:
                    continue

                expenses = await self._transactions.sum_expenses(account.id, start, end)
                percent_used = float(expenses / budget.amount * 100)
                if percent_used < threshold:
                    continue
                if budget.last_alert_sent is not None and not is_new_month(budget.last_alert_sent, now):
                    continue

                user = await self._users.get_user(budget.user_id)
                if user is None:
                    continue

                delivered = await self._notifier.send(budget_alert_notification(
                    user=user,
                    account_name=account.name,
                    budget_amount=budget.amount,
                    total_expenses=expenses,
                    percent_used=percent_used,
                ))
                if not delivered:
                    continue

                await self._budgets.mark_alert_sent(budget.id, now)
                await self._audit(AuditEventBuilder.budget_alert_sent(
                    user_id=user.id,
                    budget_id=budget.id,
                    percent_used=percent_used,
                    correlation_id=correlation_id,
                ))
                sent += 1
            except Exception as e:
                logger.error("budget_alert_failed", budget_id=str(budget.id), error=str(e))
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        "budget_alert_failed", str(e), {"budget_id": str(budget.id)}, correlation_id
                    )

        logger.info("budget_alerts_checked", sent=sent)
        return sent

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    async def cleanup_old_data(self, now: Optional[datetime] = None) -> dict[str, int]:
        """Delete insights and audit events past their retention windows."""
        now = now or datetime.utcnow()

        insight_cutoff = subtract_months(now, self._settings.insight_retention_months)
        insights_deleted = await self._insights.delete_insights_before(insight_cutoff)

        audit_events_deleted = 0
        if self._audit_storage is not None:
            audit_cutoff = now - timedelta(days=self._settings.audit_retention_days)
            audit_events_deleted = await self._audit_storage.delete_events_before(audit_cutoff)

        await self._audit(AuditEventBuilder.data_cleaned_up(
            insights_deleted=insights_deleted,
            audit_events_deleted=audit_events_deleted,
            correlation_id=create_correlation_id(),
        ))
        return {
            "insights_deleted": insights_deleted,
            "audit_events_deleted": audit_events_deleted,
        }
