"""
Shared plumbing for actions.

Every action follows the same steps:
1. Authenticate: a Clerk user id must be present
2. Resolve the local user row for that id
3. Authorize and run one storage call (atomic in storage)
4. Invalidate cached pages
5. Report the outcome as an ActionResult

DESIGN DECISION: Steps 1 and 2 raise, everything after is caught and
reported. A missing session is a different kind of problem from a
rejected delete, and callers (HTTP routes, UI pages) handle it once.
"""

from typing import Optional
from uuid import UUID

import structlog

from wealth.audit import AuditLogger
from wealth.models.audit import AuditEvent
from wealth.models.finance import ActionResult, User
from wealth.services.auth import ClerkIdentity, ClerkUserDirectory
from wealth.services.storage import UserStorageInterface


logger = structlog.get_logger(__name__)


class UnauthorizedError(Exception):
    """No authenticated Clerk user."""
    pass


class UserNotFoundError(Exception):
    """The Clerk user has no local user row."""
    pass


class BaseActions:
    """Base class for the action groups."""

    def __init__(
        self,
        user_storage: UserStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._users = user_storage
        self._audit_logger = audit_logger

    async def _require_user(self, clerk_user_id: Optional[str]) -> User:
        """
        Raises:
            UnauthorizedError: If no Clerk user id was supplied
            UserNotFoundError: If the Clerk user has no local row
        """
        if not clerk_user_id:
            raise UnauthorizedError("Unauthorized")

        user = await self._users.get_user_by_clerk_id(clerk_user_id)
        if user is None:
            raise UserNotFoundError("User not found")
        return user

    async def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    async def _failed(
        self,
        action: str,
        error: Exception,
        user_id: Optional[UUID] = None,
    ) -> ActionResult:
        """Log a caught failure and turn it into a result."""
        logger.error(
            "action_failed",
            action=action,
            user_id=str(user_id) if user_id else None,
            error=str(error),
            error_type=type(error).__name__,
        )
        if self._audit_logger:
            await self._audit_logger.log_action_failed(action, str(error), user_id)
        return ActionResult.fail(str(error))

    @staticmethod
    def _reject(message: str) -> ActionResult:
        return ActionResult.fail(message)


class UserActions(BaseActions):
    """Keeps the local user table in step with Clerk."""

    def __init__(
        self,
        user_storage: UserStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        user_directory: Optional[ClerkUserDirectory] = None,
    ):
        super().__init__(user_storage, audit_logger)
        self._directory = user_directory

    async def ensure_user(self, identity: ClerkIdentity) -> User:
        """
        Return the local user for a Clerk identity, creating it on first
        sign-in.

        Sessions without an email claim are completed from the Clerk
        profile when a user directory is configured.

        Raises:
            UnauthorizedError: If no email is available to create the
                user with
            AuthenticationError: If the Clerk profile can't be loaded
        """
        existing = await self._users.get_user_by_clerk_id(identity.clerk_user_id)
        if existing is not None:
            return existing

        if not identity.email and self._directory is not None and self._directory.is_configured:
            identity = await self._directory.get_identity(identity.clerk_user_id)

        if not identity.email:
            raise UnauthorizedError("Session has no email address")

        user = await self._users.upsert_user(User(
            clerk_user_id=identity.clerk_user_id,
            email=identity.email,
            name=identity.name,
            image_url=identity.image_url,
        ))
        logger.info("user_created", user_id=str(user.id), clerk_user_id=user.clerk_user_id)
        return user

    async def get_current_user(self, clerk_user_id: Optional[str]) -> User:
        return await self._require_user(clerk_user_id)
