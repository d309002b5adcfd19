"""
Shared fixtures.

Every test gets its own in-memory SQLite database and fake AI models;
nothing here talks to Gemini, Clerk, Inngest or an SMTP server.
"""

import asyncio
from types import SimpleNamespace
from typing import Any, Optional

import pytest

from wealth.cache import clear_path_caches
from wealth.orchestrator import create_app_components
from wealth.services.auth import ClerkAuthenticator, ClerkIdentity
from wealth.services.notifications import Notification, NotifierInterface


CLERK_USER_ID = "user_2abc"


class FakeModel:
    """Stands in for a Gemini GenerativeModel."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[Any] = []

    async def generate_content_async(self, contents: Any) -> SimpleNamespace:
        self.calls.append(contents)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return SimpleNamespace(text=response)


class CaptureNotifier(NotifierInterface):
    """Keeps notifications instead of sending them."""

    def __init__(self, deliver: bool = True):
        self.sent: list[Notification] = []
        self.deliver = deliver

    async def send(self, notification: Notification) -> bool:
        if self.deliver:
            self.sent.append(notification)
        return self.deliver


def run(coro):
    return asyncio.run(coro)


@pytest.fixture(autouse=True)
def _reset_path_caches():
    yield
    clear_path_caches()


@pytest.fixture
def receipt_model() -> FakeModel:
    return FakeModel(
        '{"amount": 42.5, "merchantName": "Fresh Market", '
        '"description": "Milk, bread", "category": "Grocery", "date": "2024-03-05"}'
    )


@pytest.fixture
def insight_model() -> FakeModel:
    return FakeModel('["Spend less on food.", "Nice savings.", "Review subscriptions."]')


@pytest.fixture
def notifier() -> CaptureNotifier:
    return CaptureNotifier()


@pytest.fixture
def components(receipt_model, insight_model, notifier):
    built = create_app_components(
        database_url="sqlite://",
        receipt_model=receipt_model,
        insight_model=insight_model,
        notifier=notifier,
        authenticator=ClerkAuthenticator(jwks_url="https://clerk.example.test/.well-known/jwks.json"),
    )
    yield built
    built.db_client.dispose()


@pytest.fixture
def user(components):
    return run(components.users.ensure_user(ClerkIdentity(
        clerk_user_id=CLERK_USER_ID,
        email="ana@example.com",
        name="Ana",
    )))


def make_account(components, name: str = "Checking", balance: str = "100.00", **extra) -> Any:
    result = run(components.accounts.create_account(CLERK_USER_ID, {
        "name": name,
        "type": extra.pop("type", "CURRENT"),
        "balance": balance,
        **extra,
    }))
    assert result.success, result.error
    return result.data


def make_transaction(components, account_id, amount: str = "10.00", type: str = "EXPENSE", **extra) -> Any:
    from datetime import datetime

    result = run(components.transactions.create_transaction(CLERK_USER_ID, {
        "type": type,
        "amount": amount,
        "date": extra.pop("date", datetime(2024, 3, 10, 12, 0)),
        "account_id": account_id,
        "category": extra.pop("category", "food"),
        **extra,
    }))
    assert result.success, result.error
    return result.data


def balance_of(components, account_id) -> Optional[Any]:
    account = run(components.accounts.get_account_with_transactions(CLERK_USER_ID, account_id))
    return account.balance if account else None
