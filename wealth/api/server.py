"""
HTTP API for Wealth.

Routes wrap the action layer one to one. Action results keep their
`{success, data, error, message}` shape; a failed action answers 400.
The Inngest functions are served from the same app at /api/inngest.

Run with:
    uvicorn wealth.api.server:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from uuid import UUID

import inngest.fast_api
import structlog
from fastapi import Depends, FastAPI, File, Query, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from wealth import __version__
from wealth.actions import UnauthorizedError, UserNotFoundError
from wealth.agents import AIConfigurationError
from wealth.api.dependencies import get_clerk_user_id, get_components, get_current_user
from wealth.audit import configure_logging
from wealth.config import get_settings, validate_all_settings
from wealth.jobs import create_functions, create_inngest_client
from wealth.models.finance import (
    AccountInput,
    AccountUpdate,
    ActionResult,
    BudgetInput,
    InsightRequest,
    TransactionInput,
    TransactionType,
    User,
)
from wealth.orchestrator import AppComponents, create_app_components
from wealth.services.auth import AuthenticationError
from wealth.services.storage import NotFoundError


logger = structlog.get_logger(__name__)


class BulkDeleteRequest(BaseModel):
    transaction_ids: list[UUID]


def _result(result: ActionResult) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST,
        content=result.model_dump(mode="json"),
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(UnauthorizedError)
    async def unauthorized(request: Request, exc: UnauthorizedError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"error": str(exc)})

    @app.exception_handler(AuthenticationError)
    async def unauthenticated(request: Request, exc: AuthenticationError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"error": str(exc)})

    @app.exception_handler(UserNotFoundError)
    async def user_not_found(request: Request, exc: UserNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(AIConfigurationError)
    async def ai_not_configured(request: Request, exc: AIConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"error": str(exc)})


def _register_routes(app: FastAPI) -> None:
    @app.get("/health", summary="Liveness and configuration check")
    async def health():
        checks = validate_all_settings()
        return {
            "status": "healthy",
            "version": __version__,
            "checks": {k: v for k, v in checks.items() if isinstance(v, bool)},
        }

    # --- receipts -------------------------------------------------------

    @app.post("/api/parse-receipt", summary="Read a receipt image")
    async def parse_receipt(
        image: Optional[UploadFile] = File(None),
        components: AppComponents = Depends(get_components),
    ):
        if not components.transactions.receipt_scanning_configured:
            return JSONResponse(status_code=500, content={"error": "API key not configured"})

        if image is None:
            return JSONResponse(status_code=400, content={"error": "No image uploaded"})

        image_bytes = await image.read()
        if not image_bytes:
            return JSONResponse(status_code=400, content={"error": "No image uploaded"})

        max_size = get_settings().app.max_upload_size_bytes
        if len(image_bytes) > max_size:
            return JSONResponse(
                status_code=413,
                content={"error": f"Image exceeds {max_size // (1024 * 1024)}MB limit"},
            )

        try:
            parsed = await components.transactions.scan_receipt(image_bytes, image.content_type)
        except AIConfigurationError:
            return JSONResponse(status_code=500, content={"error": "API key not configured"})
        except Exception as e:
            logger.error("receipt_parse_failed", error=str(e))
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to parse receipt", "detail": str(e)},
            )
        return parsed.to_response()

    # --- accounts -------------------------------------------------------

    @app.get("/api/accounts", summary="List accounts")
    async def list_accounts(
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return _result(await components.accounts.get_accounts(clerk_user_id))

    @app.post("/api/accounts", summary="Create an account")
    async def create_account(
        payload: AccountInput,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return _result(await components.accounts.create_account(clerk_user_id, payload))

    @app.get("/api/accounts/{account_id}", summary="Account with its transactions")
    async def get_account(
        account_id: UUID,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        account = await components.accounts.get_account_with_transactions(clerk_user_id, account_id)
        if account is None:
            return JSONResponse(status_code=404, content={"error": "Account not found"})
        return account

    @app.patch("/api/accounts/{account_id}", summary="Edit an account")
    async def update_account(
        account_id: UUID,
        payload: AccountUpdate,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return _result(await components.accounts.update_account(clerk_user_id, account_id, payload))

    @app.put("/api/accounts/{account_id}/default", summary="Make an account the default")
    async def set_default_account(
        account_id: UUID,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return _result(await components.accounts.update_default_account(clerk_user_id, account_id))

    @app.delete("/api/accounts/{account_id}", summary="Delete an account")
    async def delete_account(
        account_id: UUID,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return _result(await components.accounts.delete_account(clerk_user_id, account_id))

    # --- transactions ---------------------------------------------------

    @app.get("/api/transactions", summary="List transactions")
    async def list_transactions(
        account_id: Optional[UUID] = None,
        type: Optional[TransactionType] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return _result(await components.transactions.get_user_transactions(
            clerk_user_id,
            account_id=account_id,
            date_from=date_from,
            date_to=date_to,
            type=type,
            limit=limit,
        ))

    @app.post("/api/transactions", summary="Create a transaction")
    async def create_transaction(
        payload: TransactionInput,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return _result(await components.transactions.create_transaction(clerk_user_id, payload))

    @app.post("/api/transactions/bulk-delete", summary="Delete several transactions")
    async def bulk_delete_transactions(
        payload: BulkDeleteRequest,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return _result(await components.transactions.bulk_delete_transactions(
            clerk_user_id, payload.transaction_ids
        ))

    @app.get("/api/transactions/{transaction_id}", summary="Get one transaction")
    async def get_transaction(
        transaction_id: UUID,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return await components.transactions.get_transaction(clerk_user_id, transaction_id)

    @app.put("/api/transactions/{transaction_id}", summary="Edit a transaction")
    async def update_transaction(
        transaction_id: UUID,
        payload: TransactionInput,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return _result(await components.transactions.update_transaction(
            clerk_user_id, transaction_id, payload
        ))

    # --- dashboard & budget ---------------------------------------------

    @app.get("/api/dashboard", summary="All transactions, newest first")
    async def dashboard(
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return await components.dashboard.get_dashboard_data(clerk_user_id)

    @app.get("/api/budget", summary="This month's budget and spending")
    async def current_budget(
        account_id: UUID,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return await components.dashboard.get_current_budget(clerk_user_id, account_id)

    @app.put("/api/budget", summary="Set the monthly budget")
    async def update_budget(
        payload: BudgetInput,
        clerk_user_id: str = Depends(get_clerk_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return _result(await components.dashboard.update_budget(clerk_user_id, payload.amount))

    # --- insights -------------------------------------------------------

    @app.get("/api/insights/stats", summary="Income and expenses for a month")
    async def monthly_stats(
        year: Optional[int] = Query(None, ge=1, le=9999),
        month: Optional[int] = Query(None, ge=1, le=12),
        user: User = Depends(get_current_user),
        components: AppComponents = Depends(get_components),
    ):
        now = datetime.utcnow()
        when = datetime(year or now.year, month or now.month, 1)
        return await components.insights.get_monthly_stats(user.id, when)

    @app.post("/api/insights", summary="Generate insights for a month")
    async def generate_insights(
        payload: InsightRequest,
        user: User = Depends(get_current_user),
        components: AppComponents = Depends(get_components),
    ):
        try:
            return _result(await components.insights.generate_financial_insights(user.id, payload))
        except ValueError as e:
            return JSONResponse(status_code=400, content={"error": str(e)})

    @app.get("/api/insights", summary="Saved insights, latest month first")
    async def list_insights(
        user: User = Depends(get_current_user),
        components: AppComponents = Depends(get_components),
    ):
        return await components.insights.get_all_user_insights(user.id)

    @app.get("/api/insights/{year}/{month}", summary="Saved insight for one month")
    async def saved_insight(
        year: int,
        month: str,
        user: User = Depends(get_current_user),
        components: AppComponents = Depends(get_components),
    ):
        insight = await components.insights.get_saved_insights(user.id, month, year)
        if insight is None:
            return JSONResponse(status_code=404, content={"error": "No insights for this month"})
        return insight


def create_app(
    components: Optional[AppComponents] = None,
    register_jobs: bool = True,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        components: Pre-built components (tests); built from settings when omitted
        register_jobs: Serve the Inngest functions at /api/inngest
    """
    settings = get_settings().app
    if settings.debug_mode:
        configure_logging(level=logging.DEBUG, json_output=False)

    components = components or create_app_components()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("api_started", version=__version__)
        yield
        components.db_client.dispose()
        logger.info("api_stopped")

    app = FastAPI(
        title="Wealth API",
        version=__version__,
        debug=settings.debug_mode,
        lifespan=lifespan,
    )
    app.state.components = components

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)
    _register_routes(app)

    if register_jobs:
        client = create_inngest_client()
        inngest.fast_api.serve(app, client, create_functions(client, components.jobs))

    return app


def main() -> None:
    import uvicorn

    uvicorn.run("wealth.api.server:create_app", factory=True, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
