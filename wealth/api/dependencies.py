"""
FastAPI dependencies: components and the signed-in Clerk user.
"""

from typing import Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from wealth.models.finance import User
from wealth.orchestrator import AppComponents
from wealth.services.auth import AuthenticationError


logger = structlog.get_logger(__name__)

SESSION_COOKIE = "__session"


def get_components(request: Request) -> AppComponents:
    return request.app.state.components


def _session_token(request: Request) -> Optional[str]:
    """Bearer token from API clients, or the Clerk session cookie from browsers."""
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


async def get_clerk_user_id(
    request: Request,
    components: AppComponents = Depends(get_components),
) -> str:
    """
    Verify the Clerk session and make sure a local user row exists.

    Raises:
        HTTPException: 401 when the session is missing or invalid
    """
    token = _session_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        # JWKS fetches are blocking network calls
        identity = await run_in_threadpool(components.authenticator.verify_token, token)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    await components.users.ensure_user(identity)
    return identity.clerk_user_id


async def get_current_user(
    clerk_user_id: str = Depends(get_clerk_user_id),
    components: AppComponents = Depends(get_components),
) -> User:
    return await components.users.get_current_user(clerk_user_id)
