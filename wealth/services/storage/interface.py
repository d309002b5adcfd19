"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the SQL backend without touching actions or jobs
2. Keep business rules (who may delete what, which sign a balance
   change has) in the actions, and only atomicity in storage
3. Test actions against a throwaway SQLite database

Operations that change a balance together with the rows that caused the
change are single methods here, so every implementation must make them
atomic.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from wealth.models.audit import AuditEvent
from wealth.models.finance import (
    Account,
    Budget,
    FinancialInsight,
    Transaction,
    TransactionType,
    User,
)


class UserStorageInterface(ABC):
    """Local user rows mirrored from the identity provider."""

    @abstractmethod
    async def get_user_by_clerk_id(self, clerk_user_id: str) -> Optional[User]:
        """Look up the local user for a Clerk user id."""
        pass

    @abstractmethod
    async def get_user(self, user_id: UUID) -> Optional[User]:
        pass

    @abstractmethod
    async def upsert_user(self, user: User) -> User:
        """
        Insert the user, or refresh email/name/image of the existing row
        with the same Clerk user id.
        """
        pass

    @abstractmethod
    async def list_users(self) -> list[User]:
        pass


class AccountStorageInterface(ABC):
    """
    Abstract interface for account storage operations.
    """

    @abstractmethod
    async def list_accounts(self, user_id: UUID) -> list[Account]:
        """
        List a user's accounts, default account first, then newest first.
        """
        pass

    @abstractmethod
    async def get_account(self, account_id: UUID, user_id: UUID) -> Optional[Account]:
        """
        Get an account only if it belongs to the user.

        Returns:
            The account, or None when missing or owned by someone else
        """
        pass

    @abstractmethod
    async def get_default_account(self, user_id: UUID) -> Optional[Account]:
        pass

    @abstractmethod
    async def count_accounts(self, user_id: UUID) -> int:
        pass

    @abstractmethod
    async def create_account(self, account: Account) -> Account:
        """
        Insert an account.

        When `account.is_default` is set, every other account of the same
        user loses its default flag in the same database transaction.
        """
        pass

    @abstractmethod
    async def update_account(
        self,
        account_id: UUID,
        user_id: UUID,
        changes: dict[str, Any],
    ) -> Account:
        """
        Apply field changes to an account.

        Raises:
            NotFoundError: If the account is not the user's
        """
        pass

    @abstractmethod
    async def set_default_account(self, account_id: UUID, user_id: UUID) -> Account:
        """
        Make one account the user's only default, atomically.

        Raises:
            NotFoundError: If the account is not the user's
        """
        pass

    @abstractmethod
    async def delete_account(self, account_id: UUID, user_id: UUID) -> bool:
        """
        Delete an account.

        Returns:
            True if a row was deleted
        """
        pass


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage operations.

    Every write that touches a transaction also touches the balance
    of the account(s) involved, atomically.
    """

    @abstractmethod
    async def get_transaction(
        self,
        transaction_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        """
        Get a transaction, optionally restricted to one owner.
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: UUID,
        account_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """
        List a user's transactions, newest first.

        Args:
            user_id: Owner of the transactions
            account_id: Only this account's transactions
            date_from: Transactions on or after this instant
            date_to: Transactions on or before this instant
            type: Only income or only expenses
            limit: Maximum number of results
        """
        pass

    @abstractmethod
    async def count_transactions(self, account_id: UUID) -> int:
        pass

    @abstractmethod
    async def sum_expenses(
        self,
        account_id: UUID,
        date_from: datetime,
        date_to: datetime,
    ) -> Decimal:
        """Total of the account's expenses within [date_from, date_to]."""
        pass

    @abstractmethod
    async def create_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert a transaction and apply its balance effect to its account.

        Raises:
            NotFoundError: If the account does not exist
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        transaction: Transaction,
    ) -> tuple[Transaction, dict[UUID, Decimal]]:
        """
        Overwrite a transaction and move its balance effect.

        The stored row is read under lock in the same database
        transaction as the write, so the reverted effect is always the
        one actually on the books.

        Returns:
            The saved transaction and the per-account balance changes
            that were applied

        Raises:
            NotFoundError: If the transaction does not exist or belongs
                to another user
        """
        pass

    @abstractmethod
    async def delete_transactions(
        self,
        transaction_ids: list[UUID],
        user_id: UUID,
    ) -> list[Transaction]:
        """
        Delete the user's transactions among `transaction_ids` and revert
        their balance effects.

        Only rows this call actually removed are reverted; ids already
        deleted by a concurrent call contribute nothing.

        Returns:
            The deleted transactions
        """
        pass

    @abstractmethod
    async def list_due_recurring_transactions(self, now: datetime) -> list[Transaction]:
        """
        Recurring, completed transactions whose next occurrence is due
        (or was never scheduled).
        """
        pass

    @abstractmethod
    async def record_recurring_occurrence(
        self,
        template_id: UUID,
        occurrence: Transaction,
        next_recurring_date: datetime,
        processed_at: datetime,
    ) -> Optional[Transaction]:
        """
        Insert one occurrence of a recurring transaction, apply its
        balance effect and advance the template's schedule, atomically.

        Due-ness is checked again in the same database transaction, so a
        duplicate delivery for an already advanced template is a no-op.

        Returns:
            The new occurrence, or None when the template is gone, no
            longer recurring, or not due at `processed_at`
        """
        pass


class BudgetStorageInterface(ABC):
    """Monthly budgets, one per user."""

    @abstractmethod
    async def get_budget(self, user_id: UUID) -> Optional[Budget]:
        pass

    @abstractmethod
    async def upsert_budget(self, user_id: UUID, amount: Decimal) -> Budget:
        pass

    @abstractmethod
    async def list_budgets(self) -> list[Budget]:
        pass

    @abstractmethod
    async def mark_alert_sent(self, budget_id: UUID, sent_at: datetime) -> None:
        pass


class InsightStorageInterface(ABC):
    """Cached monthly insights, unique per (user, month, year)."""

    @abstractmethod
    async def upsert_insight(self, insight: FinancialInsight) -> FinancialInsight:
        """
        Insert, or overwrite the figures and insights of the existing row
        for the same (user, month, year).
        """
        pass

    @abstractmethod
    async def get_insight(
        self,
        user_id: UUID,
        month: str,
        year: int,
    ) -> Optional[FinancialInsight]:
        pass

    @abstractmethod
    async def list_insights(self, user_id: UUID) -> list[FinancialInsight]:
        """All of a user's insights, latest month first."""
        pass

    @abstractmethod
    async def delete_insights_before(self, cutoff: datetime) -> int:
        """Delete insights last updated before `cutoff`."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - only retention cleanup deletes them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Events about one entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
        user_id: Optional[UUID] = None,
    ) -> list[AuditEvent]:
        """The most recent events (newest first)."""
        pass

    @abstractmethod
    async def delete_events_before(self, cutoff: datetime) -> int:
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
