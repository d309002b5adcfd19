"""
Transaction actions.

Every write here moves money: the storage call that saves or deletes a
transaction also applies the matching balance change, atomically.
"""

from datetime import datetime
from typing import Any, Optional, Union
from uuid import UUID

from wealth.actions.base import BaseActions
from wealth.agents import AIConfigurationError, ReceiptParsingAgent
from wealth.audit import AuditLogger, create_correlation_id
from wealth.cache import revalidate_path
from wealth.models.audit import AuditEventBuilder
from wealth.models.finance import (
    ActionResult,
    ParsedReceipt,
    RecurringInterval,
    Transaction,
    TransactionInput,
    TransactionType,
    reversal_changes,
)
from wealth.services.storage import (
    AccountStorageInterface,
    NotFoundError,
    TransactionStorageInterface,
    UserStorageInterface,
)


def calculate_next_recurring_date(start: datetime, interval: RecurringInterval) -> datetime:
    return interval.next_date(start)


class TransactionActions(BaseActions):
    """Create, edit, list and delete transactions, and scan receipts."""

    def __init__(
        self,
        user_storage: UserStorageInterface,
        account_storage: AccountStorageInterface,
        transaction_storage: TransactionStorageInterface,
        receipt_agent: Optional[ReceiptParsingAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(user_storage, audit_logger)
        self._accounts = account_storage
        self._transactions = transaction_storage
        self._receipt_agent = receipt_agent or ReceiptParsingAgent()

    @property
    def receipt_scanning_configured(self) -> bool:
        return self._receipt_agent.is_configured

    async def create_transaction(
        self,
        clerk_user_id: Optional[str],
        data: Union[TransactionInput, dict[str, Any]],
    ) -> ActionResult:
        user = await self._require_user(clerk_user_id)
        try:
            payload = TransactionInput.model_validate(data)

            account = await self._accounts.get_account(payload.account_id, user.id)
            if account is None:
                return self._reject("Account not found")

            transaction = await self._transactions.create_transaction(Transaction(
                user_id=user.id,
                account_id=account.id,
                type=payload.type,
                amount=payload.amount,
                description=payload.description,
                date=payload.date,
                category=payload.category,
                receipt_url=payload.receipt_url,
                is_recurring=payload.is_recurring,
                recurring_interval=payload.recurring_interval if payload.is_recurring else None,
                next_recurring_date=(
                    calculate_next_recurring_date(payload.date, payload.recurring_interval)
                    if payload.is_recurring
                    else None
                ),
            ))

            await self._audit(AuditEventBuilder.transaction_created(
                user_id=user.id,
                transaction_id=transaction.id,
                account_id=account.id,
                balance_change=str(transaction.balance_effect),
            ))
            revalidate_path("/dashboard")
            revalidate_path(f"/account/{account.id}")
            return ActionResult.ok(transaction, message="Transaction created successfully")
        except Exception as e:
            return await self._failed("create_transaction", e, user.id)

    async def get_transaction(
        self,
        clerk_user_id: Optional[str],
        transaction_id: UUID,
    ) -> Transaction:
        """
        Raises:
            NotFoundError: If the transaction is missing or not the user's
        """
        user = await self._require_user(clerk_user_id)
        transaction = await self._transactions.get_transaction(transaction_id, user.id)
        if transaction is None:
            raise NotFoundError("Transaction not found")
        return transaction

    async def update_transaction(
        self,
        clerk_user_id: Optional[str],
        transaction_id: UUID,
        data: Union[TransactionInput, dict[str, Any]],
    ) -> ActionResult:
        """
        Edit a transaction.

        The stored balance effect is reverted on its account and the new
        effect applied to the (possibly different) new account, in one
        database transaction.
        """
        user = await self._require_user(clerk_user_id)
        try:
            payload = TransactionInput.model_validate(data)

            original = await self._transactions.get_transaction(transaction_id, user.id)
            if original is None:
                return self._reject("Transaction not found")

            account = await self._accounts.get_account(payload.account_id, user.id)
            if account is None:
                return self._reject("Account not found")

            updated = Transaction(
                **original.model_dump(exclude={
                    "type", "amount", "description", "date", "category",
                    "account_id", "is_recurring", "recurring_interval",
                    "next_recurring_date", "receipt_url", "updated_at",
                }),
                type=payload.type,
                amount=payload.amount,
                description=payload.description,
                date=payload.date,
                category=payload.category,
                account_id=account.id,
                receipt_url=payload.receipt_url or original.receipt_url,
                is_recurring=payload.is_recurring,
                recurring_interval=payload.recurring_interval if payload.is_recurring else None,
                next_recurring_date=(
                    calculate_next_recurring_date(payload.date, payload.recurring_interval)
                    if payload.is_recurring
                    else None
                ),
                updated_at=datetime.utcnow(),
            )

            saved, changes = await self._transactions.update_transaction(updated)

            await self._audit(AuditEventBuilder.transaction_updated(
                user_id=user.id,
                transaction_id=saved.id,
                balance_changes={str(k): str(v) for k, v in changes.items()},
            ))
            revalidate_path("/dashboard")
            for account_id in changes:
                revalidate_path(f"/account/{account_id}")
            return ActionResult.ok(saved, message="Transaction updated successfully")
        except Exception as e:
            return await self._failed("update_transaction", e, user.id)

    async def get_user_transactions(
        self,
        clerk_user_id: Optional[str],
        account_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
    ) -> ActionResult:
        user = await self._require_user(clerk_user_id)
        try:
            transactions = await self._transactions.list_transactions(
                user.id,
                account_id=account_id,
                date_from=date_from,
                date_to=date_to,
                type=type,
                limit=limit,
            )
            return ActionResult.ok(transactions)
        except Exception as e:
            return await self._failed("get_user_transactions", e, user.id)

    async def bulk_delete_transactions(
        self,
        clerk_user_id: Optional[str],
        transaction_ids: list[Union[UUID, str]],
    ) -> ActionResult:
        """
        Delete several transactions at once.

        Ids that aren't the user's are ignored. Each affected account is
        adjusted by the signed sum of its deleted transactions in the same
        database transaction as the delete.
        """
        user = await self._require_user(clerk_user_id)
        try:
            ids = [UUID(str(transaction_id)) for transaction_id in transaction_ids]
            deleted = await self._transactions.delete_transactions(ids, user.id)
            changes = reversal_changes(deleted)

            await self._audit(AuditEventBuilder.transactions_deleted(
                user_id=user.id,
                transaction_ids=[t.id for t in deleted],
                balance_changes={str(k): str(v) for k, v in changes.items()},
            ))
            revalidate_path("/dashboard")
            revalidate_path("/account/[id]")
            return ActionResult.ok({"deleted": len(deleted)})
        except Exception as e:
            return await self._failed("bulk_delete_transactions", e, user.id)

    async def scan_receipt(
        self,
        image_bytes: bytes,
        mime_type: Optional[str] = None,
    ) -> ParsedReceipt:
        """
        Read a receipt image with the vision model.

        The result only proposes form values; nothing is saved.

        Raises:
            AIConfigurationError: If no API key is configured
        """
        correlation_id = create_correlation_id()
        try:
            parsed = await self._receipt_agent.parse_receipt(image_bytes, mime_type)
        except AIConfigurationError:
            raise
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    "gemini", str(e), correlation_id
                )
            raise

        await self._audit(AuditEventBuilder.receipt_scanned(
            readable=parsed.amount is not None or parsed.merchant_name is not None,
            mime_type=mime_type or "image/jpeg",
            size_bytes=len(image_bytes),
            correlation_id=correlation_id,
        ))
        return parsed
