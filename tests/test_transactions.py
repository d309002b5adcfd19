"""
Tests for transaction actions: every write moves the account balance.
"""

import pytest
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from conftest import CLERK_USER_ID, balance_of, make_account, make_transaction, run
from wealth.actions import calculate_next_recurring_date
from wealth.cache import register_path_cache
from wealth.models.audit import AuditEventType
from wealth.models.finance import RecurringInterval, Transaction, TransactionType, reversal_changes
from wealth.services.auth import ClerkIdentity
from wealth.services.storage import NotFoundError, SQLTransactionStorage


class TestCreateTransaction:
    """Tests for creating transactions."""

    def test_expense_lowers_balance(self, components, user):
        account = make_account(components, balance="100.00")
        make_transaction(components, account.id, amount="30.25")
        assert balance_of(components, account.id) == Decimal("69.75")

    def test_income_raises_balance(self, components, user):
        account = make_account(components, balance="100.00")
        make_transaction(components, account.id, amount="50.00", type="INCOME", category="salary")
        assert balance_of(components, account.id) == Decimal("150.00")

    def test_success_message(self, components, user):
        account = make_account(components)
        result = run(components.transactions.create_transaction(CLERK_USER_ID, {
            "type": "EXPENSE",
            "amount": "1.00",
            "date": datetime(2024, 1, 1),
            "account_id": account.id,
            "category": "food",
        }))
        assert result.message == "Transaction created successfully"

    def test_recurring_gets_next_date(self, components, user):
        account = make_account(components)
        transaction = make_transaction(
            components,
            account.id,
            date=datetime(2024, 1, 31),
            is_recurring=True,
            recurring_interval="MONTHLY",
        )
        assert transaction.next_recurring_date == datetime(2024, 2, 29)

    def test_non_recurring_has_no_interval(self, components, user):
        account = make_account(components)
        transaction = make_transaction(components, account.id, recurring_interval="WEEKLY")
        assert transaction.recurring_interval is None
        assert transaction.next_recurring_date is None

    def test_unknown_account(self, components, user):
        make_account(components)
        result = run(components.transactions.create_transaction(CLERK_USER_ID, {
            "type": "EXPENSE",
            "amount": "1.00",
            "date": datetime(2024, 1, 1),
            "account_id": uuid4(),
            "category": "food",
        }))
        assert result.success is False
        assert result.error == "Account not found"

    def test_someone_elses_account(self, components, user):
        account = make_account(components, balance="10.00")
        run(components.users.ensure_user(ClerkIdentity(clerk_user_id="user_bob", email="bob@example.com")))

        result = run(components.transactions.create_transaction("user_bob", {
            "type": "EXPENSE",
            "amount": "5.00",
            "date": datetime(2024, 1, 1),
            "account_id": account.id,
            "category": "food",
        }))

        assert result.error == "Account not found"
        assert balance_of(components, account.id) == Decimal("10.00")

    def test_revalidates_dashboard_and_account(self, components, user):
        account = make_account(components)
        seen = []
        register_path_cache("/dashboard", lambda: seen.append("dashboard"))
        register_path_cache("/account/[id]", lambda: seen.append("account"))

        make_transaction(components, account.id)

        assert seen == ["dashboard", "account"]


class TestUpdateTransaction:
    """Editing reverts the old effect and applies the new one."""

    def _payload(self, account_id, **overrides):
        payload = {
            "type": "EXPENSE",
            "amount": "10.00",
            "date": datetime(2024, 3, 10),
            "account_id": account_id,
            "category": "food",
        }
        payload.update(overrides)
        return payload

    def test_change_amount(self, components, user):
        account = make_account(components, balance="100.00")
        transaction = make_transaction(components, account.id, amount="10.00")

        result = run(components.transactions.update_transaction(
            CLERK_USER_ID, transaction.id, self._payload(account.id, amount="25.00")
        ))

        assert result.success is True
        assert result.message == "Transaction updated successfully"
        assert balance_of(components, account.id) == Decimal("75.00")

    def test_expense_to_income(self, components, user):
        account = make_account(components, balance="100.00")
        transaction = make_transaction(components, account.id, amount="10.00")

        run(components.transactions.update_transaction(
            CLERK_USER_ID, transaction.id, self._payload(account.id, type="INCOME", category="salary")
        ))

        assert balance_of(components, account.id) == Decimal("110.00")

    def test_move_to_another_account(self, components, user):
        first = make_account(components, name="Checking", balance="100.00")
        second = make_account(components, name="Savings", type="SAVINGS", balance="50.00")
        transaction = make_transaction(components, first.id, amount="20.00")

        run(components.transactions.update_transaction(
            CLERK_USER_ID, transaction.id, self._payload(second.id, amount="20.00")
        ))

        assert balance_of(components, first.id) == Decimal("100.00")
        assert balance_of(components, second.id) == Decimal("30.00")

    def test_keeps_receipt_url_when_not_sent(self, components, user):
        account = make_account(components)
        transaction = make_transaction(components, account.id, receipt_url="https://files.example.test/r.jpg")

        result = run(components.transactions.update_transaction(
            CLERK_USER_ID, transaction.id, self._payload(account.id)
        ))

        assert result.data.receipt_url == "https://files.example.test/r.jpg"

    def test_missing_transaction(self, components, user):
        account = make_account(components)
        result = run(components.transactions.update_transaction(
            CLERK_USER_ID, uuid4(), self._payload(account.id)
        ))
        assert result.error == "Transaction not found"

    def test_deleted_meanwhile_is_rejected(self, components, user):
        account = make_account(components, balance="100.00")
        transaction = make_transaction(components, account.id, amount="10.00")
        run(components.transactions.bulk_delete_transactions(CLERK_USER_ID, [transaction.id]))

        result = run(components.transactions.update_transaction(
            CLERK_USER_ID, transaction.id, self._payload(account.id, amount="25.00")
        ))

        assert result.success is False
        assert balance_of(components, account.id) == Decimal("100.00")

    def test_reverts_the_stored_amount_not_a_stale_copy(self, components, user):
        """Two edits from the same stale read still leave a consistent balance."""
        account = make_account(components, balance="100.00")
        transaction = make_transaction(components, account.id, amount="10.00")
        storage = SQLTransactionStorage(components.db_client)

        run(storage.update_transaction(transaction.model_copy(update={"amount": Decimal("30.00")})))
        saved, changes = run(storage.update_transaction(
            transaction.model_copy(update={"amount": Decimal("20.00")})
        ))

        assert saved.amount == Decimal("20.00")
        assert changes == {account.id: Decimal("10.00")}
        assert balance_of(components, account.id) == Decimal("80.00")

    def test_update_is_audited_with_applied_changes(self, components, user):
        account = make_account(components, balance="100.00")
        transaction = make_transaction(components, account.id, amount="10.00")

        run(components.transactions.update_transaction(
            CLERK_USER_ID, transaction.id, self._payload(account.id, amount="25.00")
        ))

        events = run(components.audit_storage.get_events_by_entity("transaction", transaction.id))
        updated = [e for e in events if e.event_type == AuditEventType.TRANSACTION_UPDATED]
        changes = updated[0].details["balance_changes"]
        assert Decimal(changes[str(account.id)]) == Decimal("-15.00")

    def test_storage_update_of_deleted_row_raises(self, components, user):
        account = make_account(components, balance="100.00")
        transaction = make_transaction(components, account.id, amount="10.00")
        storage = SQLTransactionStorage(components.db_client)
        run(storage.delete_transactions([transaction.id], user.id))

        with pytest.raises(NotFoundError, match="Transaction not found"):
            run(storage.update_transaction(transaction.model_copy(update={"amount": Decimal("25.00")})))
        assert balance_of(components, account.id) == Decimal("100.00")


class TestReadTransactions:
    """Tests for reading transactions."""

    def test_get_transaction(self, components, user):
        account = make_account(components)
        transaction = make_transaction(components, account.id)
        fetched = run(components.transactions.get_transaction(CLERK_USER_ID, transaction.id))
        assert fetched.id == transaction.id

    def test_get_missing_transaction_raises(self, components, user):
        with pytest.raises(NotFoundError, match="Transaction not found"):
            run(components.transactions.get_transaction(CLERK_USER_ID, uuid4()))

    def test_list_newest_first_and_filter_by_type(self, components, user):
        account = make_account(components)
        make_transaction(components, account.id, date=datetime(2024, 1, 1))
        make_transaction(components, account.id, date=datetime(2024, 2, 1))
        make_transaction(components, account.id, type="INCOME", category="salary", date=datetime(2024, 3, 1))

        everything = run(components.transactions.get_user_transactions(CLERK_USER_ID)).data
        expenses = run(components.transactions.get_user_transactions(
            CLERK_USER_ID, type=TransactionType.EXPENSE
        )).data

        assert [t.date.month for t in everything] == [3, 2, 1]
        assert [t.date.month for t in expenses] == [2, 1]


class TestBulkDelete:
    """Bulk deletion adjusts each affected account by the signed sum."""

    def test_balances_restored_per_account(self, components, user):
        first = make_account(components, name="Checking", balance="100.00")
        second = make_account(components, name="Savings", type="SAVINGS", balance="100.00")
        a = make_transaction(components, first.id, amount="10.00")
        b = make_transaction(components, first.id, amount="40.00", type="INCOME", category="salary")
        c = make_transaction(components, second.id, amount="5.50")
        kept = make_transaction(components, second.id, amount="1.00")

        result = run(components.transactions.bulk_delete_transactions(
            CLERK_USER_ID, [a.id, str(b.id), c.id]
        ))

        assert result.success is True
        assert result.data == {"deleted": 3}
        # first: 100 - 10 + 40, then undo both -> 100
        assert balance_of(components, first.id) == Decimal("100.00")
        # second: 100 - 5.50 - 1, then undo 5.50 -> 99
        assert balance_of(components, second.id) == Decimal("99.00")
        remaining = run(components.transactions.get_user_transactions(CLERK_USER_ID)).data
        assert [t.id for t in remaining] == [kept.id]

    def test_foreign_ids_are_ignored(self, components, user):
        account = make_account(components, balance="100.00")
        make_transaction(components, account.id, amount="10.00")

        result = run(components.transactions.bulk_delete_transactions(CLERK_USER_ID, [uuid4()]))

        assert result.data == {"deleted": 0}
        assert balance_of(components, account.id) == Decimal("90.00")

    def test_invalid_id_is_reported(self, components, user):
        result = run(components.transactions.bulk_delete_transactions(CLERK_USER_ID, ["not-a-uuid"]))
        assert result.success is False

    def test_repeated_delete_reverts_once(self, components, user):
        account = make_account(components, balance="100.00")
        transaction = make_transaction(components, account.id, amount="30.00")

        first = run(components.transactions.bulk_delete_transactions(CLERK_USER_ID, [transaction.id]))
        second = run(components.transactions.bulk_delete_transactions(CLERK_USER_ID, [transaction.id]))

        assert first.data == {"deleted": 1}
        assert second.data == {"deleted": 0}
        assert balance_of(components, account.id) == Decimal("100.00")

    def test_duplicate_ids_revert_once(self, components, user):
        account = make_account(components, balance="100.00")
        transaction = make_transaction(components, account.id, amount="30.00")

        result = run(components.transactions.bulk_delete_transactions(
            CLERK_USER_ID, [transaction.id, str(transaction.id)]
        ))

        assert result.data == {"deleted": 1}
        assert balance_of(components, account.id) == Decimal("100.00")

    def test_storage_reverts_only_rows_it_removed(self, components, user):
        """A delete racing an earlier one finds nothing left to revert."""
        account = make_account(components, balance="100.00")
        transaction = make_transaction(components, account.id, amount="30.00")
        storage = SQLTransactionStorage(components.db_client)

        removed = run(storage.delete_transactions([transaction.id], user.id))
        again = run(storage.delete_transactions([transaction.id], user.id))

        assert [t.id for t in removed] == [transaction.id]
        assert again == []
        assert balance_of(components, account.id) == Decimal("100.00")

    def test_other_users_rows_are_untouched(self, components, user):
        account = make_account(components, balance="100.00")
        transaction = make_transaction(components, account.id, amount="30.00")
        run(components.users.ensure_user(ClerkIdentity(clerk_user_id="user_other", email="other@example.com")))

        result = run(components.transactions.bulk_delete_transactions("user_other", [transaction.id]))

        assert result.data == {"deleted": 0}
        assert balance_of(components, account.id) == Decimal("70.00")

    def test_deletion_is_audited(self, components, user):
        account = make_account(components, balance="100.00")
        transaction = make_transaction(components, account.id, amount="30.00")

        run(components.transactions.bulk_delete_transactions(CLERK_USER_ID, [transaction.id, uuid4()]))

        events = run(components.audit_storage.get_recent_events(user_id=user.id))
        deleted = [e for e in events if e.event_type == AuditEventType.TRANSACTIONS_DELETED]
        assert deleted[0].details["transaction_ids"] == [str(transaction.id)]
        assert Decimal(deleted[0].details["balance_changes"][str(account.id)]) == Decimal("30.00")


class TestReceiptScan:
    """Tests for scanning through the action layer."""

    def test_scan_returns_proposal(self, components, user):
        parsed = run(components.transactions.scan_receipt(b"image-bytes", "image/jpeg"))
        assert parsed.amount == 42.5
        assert parsed.merchant_name == "Fresh Market"

    def test_scan_failure_propagates(self, components, receipt_model):
        receipt_model.responses = [RuntimeError("boom")]
        with pytest.raises(RuntimeError, match="boom"):
            run(components.transactions.scan_receipt(b"image-bytes"))


class TestHelpers:
    """Tests for pure helpers."""

    def test_reversal_changes(self):
        account_a, account_b = uuid4(), uuid4()
        user_id = uuid4()

        def tx(account_id, type, amount):
            return Transaction(
                user_id=user_id,
                account_id=account_id,
                type=type,
                amount=Decimal(amount),
                date=datetime(2024, 1, 1),
                category="x",
            )

        changes = reversal_changes([
            tx(account_a, TransactionType.EXPENSE, "10.00"),
            tx(account_a, TransactionType.INCOME, "3.00"),
            tx(account_b, TransactionType.EXPENSE, "2.50"),
        ])

        assert changes == {account_a: Decimal("7.00"), account_b: Decimal("2.50")}

    def test_calculate_next_recurring_date(self):
        assert calculate_next_recurring_date(
            datetime(2024, 3, 1), RecurringInterval.WEEKLY
        ) == datetime(2024, 3, 8)
