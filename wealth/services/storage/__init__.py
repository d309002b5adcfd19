"""
Storage layer: abstract interfaces and the SQLAlchemy implementation.
"""

from wealth.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    InsightStorageInterface,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    UserStorageInterface,
)
from wealth.services.storage.sql import (
    SQLAccountStorage,
    SQLAlchemyClient,
    SQLAuditStorage,
    SQLBudgetStorage,
    SQLInsightStorage,
    SQLTransactionStorage,
    SQLUserStorage,
)

__all__ = [
    "AccountStorageInterface",
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "InsightStorageInterface",
    "TransactionStorageInterface",
    "UserStorageInterface",
    "StorageError",
    "NotFoundError",
    "DuplicateError",
    "ConnectionError",
    "SQLAlchemyClient",
    "SQLAccountStorage",
    "SQLAuditStorage",
    "SQLBudgetStorage",
    "SQLInsightStorage",
    "SQLTransactionStorage",
    "SQLUserStorage",
]
