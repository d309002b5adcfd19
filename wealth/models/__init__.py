"""
Data Models Package

This package contains all Pydantic models used in Wealth.
All data flowing through actions, storage and the API conforms to these schemas.
"""

from wealth.models.finance import (
    MONTH_NAMES,
    Account,
    AccountInput,
    AccountType,
    AccountUpdate,
    AccountWithTransactions,
    ActionResult,
    Budget,
    BudgetInput,
    Category,
    CurrentBudget,
    FinancialInsight,
    InsightRequest,
    Money,
    MonthlyStats,
    ParsedReceipt,
    RecurringInterval,
    Transaction,
    TransactionInput,
    TransactionStatus,
    TransactionType,
    User,
    reversal_changes,
)
from wealth.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "MONTH_NAMES",
    "Account",
    "AccountInput",
    "AccountType",
    "AccountUpdate",
    "AccountWithTransactions",
    "ActionResult",
    "Budget",
    "BudgetInput",
    "Category",
    "CurrentBudget",
    "FinancialInsight",
    "InsightRequest",
    "Money",
    "MonthlyStats",
    "ParsedReceipt",
    "RecurringInterval",
    "Transaction",
    "TransactionInput",
    "TransactionStatus",
    "TransactionType",
    "User",
    "reversal_changes",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
