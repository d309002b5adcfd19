"""
Component Wiring for Wealth

This module builds every component once and hands the same instances to
the HTTP API, the Streamlit UI and the job runner.

DESIGN DECISION: Construction is explicit and in one place:
- Storages share one database client (one engine, one pool)
- Actions and jobs get storages through their interfaces
- Tests pass an in-memory SQLite URL and fake AI models
"""

from dataclasses import dataclass
from typing import Any, Optional

import structlog

from wealth.actions import (
    AccountActions,
    DashboardActions,
    InsightActions,
    TransactionActions,
    UserActions,
)
from wealth.agents import InsightAgent, ReceiptParsingAgent
from wealth.audit import AuditLogger
from wealth.jobs import JobTasks
from wealth.services.auth import ClerkAuthenticator, ClerkUserDirectory
from wealth.services.notifications import NotifierInterface, create_notifier
from wealth.services.storage import (
    SQLAccountStorage,
    SQLAlchemyClient,
    SQLAuditStorage,
    SQLBudgetStorage,
    SQLInsightStorage,
    SQLTransactionStorage,
    SQLUserStorage,
)


logger = structlog.get_logger(__name__)


@dataclass
class AppComponents:
    """Everything the entry points need."""

    db_client: SQLAlchemyClient
    audit_logger: AuditLogger
    audit_storage: SQLAuditStorage
    authenticator: ClerkAuthenticator
    users: UserActions
    accounts: AccountActions
    transactions: TransactionActions
    dashboard: DashboardActions
    insights: InsightActions
    jobs: JobTasks


def create_app_components(
    database_url: Optional[str] = None,
    receipt_model: Optional[Any] = None,
    insight_model: Optional[Any] = None,
    notifier: Optional[NotifierInterface] = None,
    authenticator: Optional[ClerkAuthenticator] = None,
    user_directory: Optional[ClerkUserDirectory] = None,
    init_schema: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        database_url: Override DATABASE_URL (tests use "sqlite://")
        receipt_model: Model handle for the receipt agent instead of Gemini
        insight_model: Model handle for the insight agent instead of Gemini
        notifier: Notification delivery; SMTP or log-only from settings
        authenticator: Clerk verifier; built from settings when omitted
        user_directory: Clerk profile lookup for tokens without an email
            claim; built from settings when omitted
        init_schema: Create missing tables on startup

    Raises:
        ConnectionError: If the database can't be reached
    """
    db_client = SQLAlchemyClient(url=database_url)
    if init_schema:
        db_client.init_schema()

    user_storage = SQLUserStorage(db_client)
    account_storage = SQLAccountStorage(db_client)
    transaction_storage = SQLTransactionStorage(db_client)
    budget_storage = SQLBudgetStorage(db_client)
    insight_storage = SQLInsightStorage(db_client)
    audit_storage = SQLAuditStorage(db_client)
    audit_logger = AuditLogger(audit_storage)

    insights = InsightActions(
        transaction_storage,
        insight_storage,
        insight_agent=InsightAgent(model=insight_model),
        audit_logger=audit_logger,
    )

    components = AppComponents(
        db_client=db_client,
        audit_logger=audit_logger,
        audit_storage=audit_storage,
        authenticator=authenticator or ClerkAuthenticator(),
        users=UserActions(
            user_storage,
            audit_logger,
            user_directory=user_directory or ClerkUserDirectory(),
        ),
        accounts=AccountActions(
            user_storage, account_storage, transaction_storage, audit_logger
        ),
        transactions=TransactionActions(
            user_storage,
            account_storage,
            transaction_storage,
            receipt_agent=ReceiptParsingAgent(model=receipt_model),
            audit_logger=audit_logger,
        ),
        dashboard=DashboardActions(
            user_storage,
            account_storage,
            transaction_storage,
            budget_storage,
            audit_logger,
        ),
        insights=insights,
        jobs=JobTasks(
            user_storage=user_storage,
            account_storage=account_storage,
            transaction_storage=transaction_storage,
            budget_storage=budget_storage,
            insight_storage=insight_storage,
            insight_actions=insights,
            notifier=notifier or create_notifier(),
            audit_storage=audit_storage,
            audit_logger=audit_logger,
        ),
    )
    logger.info("components_created", database=db_client.url.split("://")[0])
    return components
