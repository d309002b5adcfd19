"""
Tests for the HTTP API.

Clerk verification is replaced by a dependency override; everything
below it runs for real against the in-memory database.
"""

import logging
import pytest
from datetime import datetime
from uuid import uuid4

from fastapi.testclient import TestClient

from conftest import CLERK_USER_ID, make_account, make_transaction, run
from wealth.actions import TransactionActions
from wealth.agents.receipts import UNPARSEABLE_MESSAGE
from wealth.api import create_app
from wealth.api import server
from wealth.api.dependencies import get_clerk_user_id
from wealth.services.auth import ClerkIdentity


@pytest.fixture
def app(components):
    app = create_app(components, register_jobs=False)
    app.dependency_overrides[get_clerk_user_id] = lambda: CLERK_USER_ID
    return app


@pytest.fixture
def client(app, user):
    return TestClient(app)


class TestHealth:

    def test_health(self, components):
        client = TestClient(create_app(components, register_jobs=False))
        response = client.get("/health")
        body = response.json()

        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert all(isinstance(v, bool) for v in body["checks"].values())


class TestDebugMode:
    """DEBUG_MODE switches the app and logging into development mode."""

    def test_off_by_default(self, components, monkeypatch):
        monkeypatch.delenv("DEBUG_MODE", raising=False)
        assert create_app(components, register_jobs=False).debug is False

    def test_console_logging_and_debug_app(self, components, monkeypatch):
        calls = []
        monkeypatch.setenv("DEBUG_MODE", "true")
        monkeypatch.setattr(server, "configure_logging", lambda **kwargs: calls.append(kwargs))

        app = create_app(components, register_jobs=False)

        assert app.debug is True
        assert calls == [{"level": logging.DEBUG, "json_output": False}]


class TestAuth:
    """Tests for session handling."""

    def test_missing_session_is_401(self, components):
        client = TestClient(create_app(components, register_jobs=False))
        response = client.get("/api/accounts")
        assert response.status_code == 401

    def test_unknown_local_user_is_404(self, app):
        """The override skips ensure_user, so no local row exists."""
        response = TestClient(app).get("/api/accounts")
        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}


class TestParseReceipt:
    """Tests for POST /api/parse-receipt."""

    def test_parses_upload(self, client, receipt_model):
        response = client.post(
            "/api/parse-receipt",
            files={"image": ("receipt.jpg", b"jpeg-bytes", "image/jpeg")},
        )

        assert response.status_code == 200
        assert response.json() == {
            "amount": 42.5,
            "merchantName": "Fresh Market",
            "description": "Milk, bread",
            "category": "Grocery",
            "date": "2024-03-05",
        }
        assert receipt_model.calls[0][1]["mime_type"] == "image/jpeg"

    def test_no_image(self, client):
        response = client.post("/api/parse-receipt")
        assert response.status_code == 400
        assert response.json() == {"error": "No image uploaded"}

    def test_empty_image(self, client):
        response = client.post(
            "/api/parse-receipt",
            files={"image": ("receipt.jpg", b"", "image/jpeg")},
        )
        assert response.status_code == 400

    def test_unparseable_model_output_is_null_filled(self, client, receipt_model):
        receipt_model.responses = ["Sorry, I can't help with that."]

        response = client.post(
            "/api/parse-receipt",
            files={"image": ("receipt.png", b"png-bytes", "image/png")},
        )

        assert response.status_code == 200
        assert response.json()["amount"] is None
        assert response.json()["description"] == UNPARSEABLE_MESSAGE

    def test_model_failure_is_500(self, client, receipt_model):
        receipt_model.responses = [RuntimeError("model overloaded")]

        response = client.post(
            "/api/parse-receipt",
            files={"image": ("receipt.jpg", b"jpeg-bytes", "image/jpeg")},
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to parse receipt", "detail": "model overloaded"}

    def test_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(TransactionActions, "receipt_scanning_configured", property(lambda self: False))

        response = client.post(
            "/api/parse-receipt",
            files={"image": ("receipt.jpg", b"jpeg-bytes", "image/jpeg")},
        )

        assert response.status_code == 500
        assert response.json() == {"error": "API key not configured"}


class TestAccountRoutes:
    """Tests for the account endpoints."""

    def test_create_and_list(self, client):
        created = client.post("/api/accounts", json={"name": "Checking", "type": "CURRENT", "balance": "250.50"})

        assert created.status_code == 200
        body = created.json()
        assert body["success"] is True
        assert body["data"]["balance"] == 250.5
        assert body["data"]["is_default"] is True

        listed = client.get("/api/accounts").json()
        assert [a["name"] for a in listed["data"]] == ["Checking"]

    def test_invalid_payload_is_422(self, client):
        response = client.post("/api/accounts", json={"name": "Checking", "type": "PIGGY", "balance": "1"})
        assert response.status_code == 422

    def test_account_detail(self, client, components):
        account = make_account(components)
        make_transaction(components, account.id, amount="12.00")

        response = client.get(f"/api/accounts/{account.id}")

        assert response.status_code == 200
        assert response.json()["balance"] == 88.0
        assert response.json()["transaction_count"] == 1

    def test_missing_account_is_404(self, client):
        response = client.get(f"/api/accounts/{uuid4()}")
        assert response.status_code == 404
        assert response.json() == {"error": "Account not found"}

    def test_deleting_default_account_is_400(self, client, components):
        account = make_account(components)
        response = client.delete(f"/api/accounts/{account.id}")
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_switch_default(self, client, components):
        make_account(components, name="Checking")
        savings = make_account(components, name="Savings", type="SAVINGS")

        response = client.put(f"/api/accounts/{savings.id}/default")

        assert response.status_code == 200
        assert response.json()["data"]["is_default"] is True


class TestTransactionRoutes:
    """Tests for the transaction endpoints."""

    def test_create_and_fetch(self, client, components):
        account = make_account(components)

        created = client.post("/api/transactions", json={
            "type": "EXPENSE",
            "amount": "19.99",
            "date": "2024-03-10T12:00:00",
            "account_id": str(account.id),
            "category": "shopping",
            "description": "Headphones",
        })

        assert created.status_code == 200
        transaction_id = created.json()["data"]["id"]
        fetched = client.get(f"/api/transactions/{transaction_id}")
        assert fetched.json()["description"] == "Headphones"
        assert fetched.json()["amount"] == 19.99

    def test_missing_transaction_is_404(self, client):
        response = client.get(f"/api/transactions/{uuid4()}")
        assert response.status_code == 404
        assert response.json() == {"error": "Transaction not found"}

    def test_filter_by_type(self, client, components):
        account = make_account(components)
        make_transaction(components, account.id)
        make_transaction(components, account.id, type="INCOME", category="salary")

        response = client.get("/api/transactions", params={"type": "INCOME"})

        assert [t["type"] for t in response.json()["data"]] == ["INCOME"]

    def test_bulk_delete(self, client, components):
        account = make_account(components, balance="100.00")
        first = make_transaction(components, account.id, amount="10.00")
        second = make_transaction(components, account.id, amount="15.00")

        response = client.post("/api/transactions/bulk-delete", json={
            "transaction_ids": [str(first.id), str(second.id)],
        })

        assert response.json()["data"] == {"deleted": 2}
        assert client.get(f"/api/accounts/{account.id}").json()["balance"] == 100.0

    def test_dashboard_lists_everything(self, client, components):
        account = make_account(components)
        make_transaction(components, account.id, date=datetime(2024, 1, 1))
        make_transaction(components, account.id, date=datetime(2024, 2, 1))

        response = client.get("/api/dashboard")

        assert [t["date"][:7] for t in response.json()] == ["2024-02", "2024-01"]


class TestBudgetAndInsightRoutes:
    """Tests for budget and insight endpoints."""

    def test_set_and_read_budget(self, client, components):
        account = make_account(components)

        client.put("/api/budget", json={"amount": "500.00"})
        response = client.get("/api/budget", params={"account_id": str(account.id)})

        assert response.json()["budget"]["amount"] == 500.0

    def test_budget_of_someone_elses_account_is_404(self, app, components, user):
        account = make_account(components, balance="1000.00")
        make_transaction(components, account.id, amount="77.00", date=datetime.utcnow())
        run(components.users.ensure_user(ClerkIdentity(clerk_user_id="user_other", email="other@example.com")))
        app.dependency_overrides[get_clerk_user_id] = lambda: "user_other"

        response = TestClient(app).get("/api/budget", params={"account_id": str(account.id)})

        assert response.status_code == 404
        assert response.json() == {"error": "Account not found"}

    def test_monthly_stats(self, client, components):
        account = make_account(components)
        make_transaction(components, account.id, amount="12.00", date=datetime(2024, 3, 10))

        response = client.get("/api/insights/stats", params={"year": 2024, "month": 3})

        assert response.status_code == 200
        assert response.json()["total_expenses"] == 12.0

    @pytest.mark.parametrize("month", [0, 13])
    def test_month_out_of_range_is_422(self, client, month):
        response = client.get("/api/insights/stats", params={"year": 2024, "month": month})
        assert response.status_code == 422

    def test_generate_insights(self, client):
        response = client.post("/api/insights", json={
            "month": "March",
            "year": 2024,
            "total_income": 1000,
            "total_expenses": 400,
        })

        assert response.status_code == 200
        assert response.json()["data"]["insights"][0] == "Spend less on food."
        assert client.get("/api/insights/2024/March").status_code == 200
        assert len(client.get("/api/insights").json()) == 1

    def test_generate_without_month_is_400(self, client):
        response = client.post("/api/insights", json={"year": 2024})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields"}

    def test_missing_insight_is_404(self, client):
        response = client.get("/api/insights/2024/April")
        assert response.status_code == 404
