"""
Authentication: Clerk session verification and profile lookup.
"""

from wealth.services.auth.clerk import (
    AuthenticationError,
    ClerkAuthenticator,
    ClerkIdentity,
    ClerkUserDirectory,
)

__all__ = ["AuthenticationError", "ClerkAuthenticator", "ClerkIdentity", "ClerkUserDirectory"]
