"""
Tests for user and account actions against an in-memory database.
"""

import httpx
import pytest
from decimal import Decimal
from uuid import uuid4

from conftest import CLERK_USER_ID, make_account, make_transaction, run
from wealth.actions import UnauthorizedError, UserActions, UserNotFoundError
from wealth.actions.accounts import ACCOUNT_HAS_TRANSACTIONS_ERROR, DEFAULT_ACCOUNT_DELETE_ERROR
from wealth.cache import register_path_cache
from wealth.models.audit import AuditEventType
from wealth.services.auth import AuthenticationError, ClerkIdentity, ClerkUserDirectory
from wealth.services.storage import SQLUserStorage


class TestUsers:
    """Tests for mirroring Clerk users locally."""

    def test_ensure_user_creates_once(self, components, user):
        """A second sign-in returns the same local user."""
        again = run(components.users.ensure_user(ClerkIdentity(
            clerk_user_id=CLERK_USER_ID,
            email="ana@example.com",
        )))
        assert again.id == user.id

    def test_ensure_user_requires_email(self, components):
        with pytest.raises(UnauthorizedError):
            run(components.users.ensure_user(ClerkIdentity(clerk_user_id="user_no_email")))

    def test_ensure_user_reads_profile_when_token_has_no_email(self, components):
        """Default Clerk session tokens carry only the user id."""
        def handler(request):
            return httpx.Response(200, json={
                "id": "user_new",
                "primary_email_address_id": "idn_1",
                "email_addresses": [{"id": "idn_1", "email_address": "new@example.com"}],
                "first_name": "Nia",
            })

        users = UserActions(
            SQLUserStorage(components.db_client),
            user_directory=ClerkUserDirectory(
                secret_key="sk_test_123",
                api_url="https://api.clerk.example.test/v1",
                transport=httpx.MockTransport(handler),
            ),
        )

        created = run(users.ensure_user(ClerkIdentity(clerk_user_id="user_new")))

        assert created.email == "new@example.com"
        assert created.name == "Nia"
        assert run(components.users.get_current_user("user_new")).id == created.id

    def test_profile_lookup_failure_is_an_authentication_error(self, components):
        users = UserActions(
            SQLUserStorage(components.db_client),
            user_directory=ClerkUserDirectory(
                secret_key="sk_test_123",
                transport=httpx.MockTransport(lambda request: httpx.Response(404)),
            ),
        )

        with pytest.raises(AuthenticationError, match="Unknown Clerk user"):
            run(users.ensure_user(ClerkIdentity(clerk_user_id="user_gone")))

    def test_missing_session_is_unauthorized(self, components, user):
        with pytest.raises(UnauthorizedError, match="Unauthorized"):
            run(components.accounts.get_accounts(None))

    def test_unknown_clerk_user(self, components, user):
        with pytest.raises(UserNotFoundError, match="User not found"):
            run(components.accounts.get_accounts("user_somebody_else"))


class TestCreateAccount:
    """Tests for account creation and the default flag."""

    def test_first_account_is_default(self, components, user):
        account = make_account(components, is_default=False)
        assert account.is_default is True
        assert account.balance == Decimal("100.00")

    def test_new_default_unsets_previous(self, components, user):
        first = make_account(components, name="Checking")
        second = make_account(components, name="Savings", type="SAVINGS", is_default=True)

        accounts = run(components.accounts.get_accounts(CLERK_USER_ID)).data
        defaults = [a.id for a in accounts if a.is_default]
        assert defaults == [second.id]
        assert first.id in [a.id for a in accounts]

    def test_default_listed_first(self, components, user):
        make_account(components, name="Checking")
        make_account(components, name="Savings", type="SAVINGS")

        accounts = run(components.accounts.get_accounts(CLERK_USER_ID)).data
        assert accounts[0].name == "Checking"
        assert accounts[0].is_default is True

    def test_invalid_payload_is_reported(self, components, user):
        result = run(components.accounts.create_account(CLERK_USER_ID, {
            "name": "",
            "type": "CURRENT",
            "balance": "0",
        }))
        assert result.success is False
        assert result.error

    def test_creation_is_audited(self, components, user):
        account = make_account(components)

        events = run(components.audit_storage.get_events_by_entity("account", account.id))
        assert [e.event_type for e in events] == [AuditEventType.ACCOUNT_CREATED]
        assert events[0].user_id == user.id


class TestUpdateAccount:
    """Tests for editing accounts."""

    def test_rename(self, components, user):
        account = make_account(components)
        result = run(components.accounts.update_account(CLERK_USER_ID, account.id, {"name": "Everyday"}))
        assert result.success is True
        assert result.data.name == "Everyday"
        assert result.message == "Account updated successfully"

    def test_update_missing_account(self, components, user):
        result = run(components.accounts.update_account(CLERK_USER_ID, uuid4(), {"name": "X"}))
        assert result.success is False
        assert result.error == "Account not found"

    def test_switch_default(self, components, user):
        first = make_account(components, name="Checking")
        second = make_account(components, name="Savings", type="SAVINGS")

        result = run(components.accounts.update_default_account(CLERK_USER_ID, second.id))

        assert result.success is True
        accounts = {a.id: a for a in run(components.accounts.get_accounts(CLERK_USER_ID)).data}
        assert accounts[second.id].is_default is True
        assert accounts[first.id].is_default is False


class TestDeleteAccount:
    """Deletion rules."""

    def test_default_account_cannot_be_deleted(self, components, user):
        account = make_account(components)
        result = run(components.accounts.delete_account(CLERK_USER_ID, account.id))
        assert result.success is False
        assert result.error == DEFAULT_ACCOUNT_DELETE_ERROR

    def test_account_with_transactions_cannot_be_deleted(self, components, user):
        make_account(components, name="Checking")
        other = make_account(components, name="Savings", type="SAVINGS")
        make_transaction(components, other.id)

        result = run(components.accounts.delete_account(CLERK_USER_ID, other.id))

        assert result.success is False
        assert result.error == ACCOUNT_HAS_TRANSACTIONS_ERROR

    def test_delete_empty_non_default_account(self, components, user):
        make_account(components, name="Checking")
        other = make_account(components, name="Savings", type="SAVINGS")

        result = run(components.accounts.delete_account(CLERK_USER_ID, other.id))

        assert result.success is True
        assert result.message == "Account deleted successfully"
        assert run(components.accounts.get_account_with_transactions(CLERK_USER_ID, other.id)) is None

    def test_delete_missing_account(self, components, user):
        result = run(components.accounts.delete_account(CLERK_USER_ID, uuid4()))
        assert result.error == "Account not found"


class TestAccountDetail:
    """Tests for the account page data."""

    def test_account_with_transactions(self, components, user):
        account = make_account(components)
        make_transaction(components, account.id, amount="5.00")
        make_transaction(components, account.id, amount="7.00")

        detail = run(components.accounts.get_account_with_transactions(CLERK_USER_ID, account.id))

        assert detail.transaction_count == 2
        assert detail.balance == Decimal("88.00")

    def test_other_users_account_is_hidden(self, components, user):
        account = make_account(components)
        run(components.users.ensure_user(ClerkIdentity(clerk_user_id="user_bob", email="bob@example.com")))

        assert run(components.accounts.get_account_with_transactions("user_bob", account.id)) is None


class TestRevalidation:
    """Writes invalidate cached pages."""

    def test_create_account_revalidates_dashboard(self, components, user):
        calls = []
        register_path_cache("/dashboard", lambda: calls.append("dashboard"))

        make_account(components)

        assert calls == ["dashboard"]

    def test_failed_action_is_audited(self, components, user):
        run(components.accounts.update_account(CLERK_USER_ID, uuid4(), {"name": "X"}))

        events = run(components.audit_storage.get_recent_events(user_id=user.id))
        assert any(e.event_type == AuditEventType.ACTION_FAILED for e in events)
