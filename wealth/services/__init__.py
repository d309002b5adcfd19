"""Services package."""

from wealth.services.auth import AuthenticationError, ClerkAuthenticator, ClerkIdentity
from wealth.services.notifications import (
    LoggingNotifier,
    NotifierInterface,
    SMTPNotifier,
    create_notifier,
)
from wealth.services.storage import (
    ConnectionError,
    DuplicateError,
    NotFoundError,
    SQLAlchemyClient,
    StorageError,
)

__all__ = [
    # Auth
    "AuthenticationError",
    "ClerkAuthenticator",
    "ClerkIdentity",
    # Notifications
    "LoggingNotifier",
    "NotifierInterface",
    "SMTPNotifier",
    "create_notifier",
    # Storage
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "SQLAlchemyClient",
    "StorageError",
]
