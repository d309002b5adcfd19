"""
Account actions.
"""

from typing import Any, Optional, Union
from uuid import UUID

from wealth.actions.base import BaseActions
from wealth.audit import AuditLogger
from wealth.cache import revalidate_path
from wealth.models.audit import AuditEventBuilder
from wealth.models.finance import (
    Account,
    AccountInput,
    AccountUpdate,
    AccountWithTransactions,
    ActionResult,
)
from wealth.services.storage import (
    AccountStorageInterface,
    TransactionStorageInterface,
    UserStorageInterface,
)


DEFAULT_ACCOUNT_DELETE_ERROR = (
    "Cannot delete the default account. Set another account as default first."
)
ACCOUNT_HAS_TRANSACTIONS_ERROR = (
    "Cannot delete account with transactions. Delete transactions first."
)


class AccountActions(BaseActions):
    """Create, edit, list and delete a user's accounts."""

    def __init__(
        self,
        user_storage: UserStorageInterface,
        account_storage: AccountStorageInterface,
        transaction_storage: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(user_storage, audit_logger)
        self._accounts = account_storage
        self._transactions = transaction_storage

    async def get_accounts(self, clerk_user_id: Optional[str]) -> ActionResult:
        """All accounts, default first, then newest first."""
        user = await self._require_user(clerk_user_id)
        try:
            accounts = await self._accounts.list_accounts(user.id)
            return ActionResult.ok(accounts)
        except Exception as e:
            return await self._failed("get_accounts", e, user.id)

    async def create_account(
        self,
        clerk_user_id: Optional[str],
        data: Union[AccountInput, dict[str, Any]],
    ) -> ActionResult:
        """
        Create an account.

        The first account a user creates is always the default. Asking for
        `is_default` on a later account moves the default flag to it.
        """
        user = await self._require_user(clerk_user_id)
        try:
            payload = AccountInput.model_validate(data)
            existing = await self._accounts.count_accounts(user.id)

            account = await self._accounts.create_account(Account(
                user_id=user.id,
                name=payload.name,
                type=payload.type,
                balance=payload.balance,
                is_default=existing == 0 or payload.is_default,
            ))

            await self._audit(AuditEventBuilder.account_created(
                user_id=user.id,
                account_id=account.id,
                name=account.name,
                is_default=account.is_default,
            ))
            revalidate_path("/dashboard")
            return ActionResult.ok(account, message="Account created successfully")
        except Exception as e:
            return await self._failed("create_account", e, user.id)

    async def update_account(
        self,
        clerk_user_id: Optional[str],
        account_id: UUID,
        data: Union[AccountUpdate, dict[str, Any]],
    ) -> ActionResult:
        """Edit name, type and balance."""
        user = await self._require_user(clerk_user_id)
        try:
            changes = AccountUpdate.model_validate(data).model_dump(exclude_none=True)
            account = await self._accounts.update_account(account_id, user.id, changes)

            await self._audit(AuditEventBuilder.account_updated(
                user_id=user.id,
                account_id=account.id,
                fields=sorted(changes),
            ))
            revalidate_path("/dashboard")
            return ActionResult.ok(account, message="Account updated successfully")
        except Exception as e:
            return await self._failed("update_account", e, user.id)

    async def update_default_account(
        self,
        clerk_user_id: Optional[str],
        account_id: UUID,
    ) -> ActionResult:
        user = await self._require_user(clerk_user_id)
        try:
            account = await self._accounts.set_default_account(account_id, user.id)

            await self._audit(AuditEventBuilder.default_account_changed(user.id, account.id))
            revalidate_path("/dashboard")
            return ActionResult.ok(account)
        except Exception as e:
            return await self._failed("update_default_account", e, user.id)

    async def delete_account(
        self,
        clerk_user_id: Optional[str],
        account_id: UUID,
    ) -> ActionResult:
        """
        Delete an account.

        The default account and accounts that still have transactions
        can't be deleted.
        """
        user = await self._require_user(clerk_user_id)
        try:
            account = await self._accounts.get_account(account_id, user.id)
            if account is None:
                return self._reject("Account not found")

            if account.is_default:
                return self._reject(DEFAULT_ACCOUNT_DELETE_ERROR)

            if await self._transactions.count_transactions(account.id) > 0:
                return self._reject(ACCOUNT_HAS_TRANSACTIONS_ERROR)

            await self._accounts.delete_account(account.id, user.id)

            await self._audit(AuditEventBuilder.account_deleted(user.id, account.id))
            revalidate_path("/dashboard")
            return ActionResult.ok(message="Account deleted successfully")
        except Exception as e:
            return await self._failed("delete_account", e, user.id)

    async def get_account_with_transactions(
        self,
        clerk_user_id: Optional[str],
        account_id: UUID,
    ) -> Optional[AccountWithTransactions]:
        """
        An account with its transactions, newest first.

        Returns:
            None when the account is missing or belongs to someone else
        """
        user = await self._require_user(clerk_user_id)

        account = await self._accounts.get_account(account_id, user.id)
        if account is None:
            return None

        transactions = await self._transactions.list_transactions(user.id, account_id=account.id)
        return AccountWithTransactions(
            **account.model_dump(),
            transactions=transactions,
            transaction_count=len(transactions),
        )
