"""
Clerk Session Verification

DESIGN DECISION: Clerk owns sign-in. We only verify the session JWT it
issues (RS256, keys from the instance JWKS endpoint) and read the user's
identity from the claims. No passwords or sessions are stored here.

Clerk's default session token carries only the user id. Until the
instance adds `email` and `name` claims through a session token template,
the profile is read once from the Backend API when the local user row is
created.
"""

from typing import Any, Optional

import httpx
import jwt
import structlog
from pydantic import BaseModel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from wealth.config import get_settings


logger = structlog.get_logger(__name__)


class ClerkIdentity(BaseModel):
    """Identity claims of a verified Clerk session."""

    clerk_user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "ClerkIdentity":
        # Email, name and image only appear when the session token
        # template adds them.
        name = claims.get("name")
        if not name:
            parts = [claims.get("first_name"), claims.get("last_name")]
            name = " ".join(p for p in parts if p) or None
        return cls(
            clerk_user_id=claims["sub"],
            email=claims.get("email") or claims.get("primary_email_address"),
            name=name,
            image_url=claims.get("image_url") or claims.get("picture"),
        )

    @classmethod
    def from_profile(cls, profile: dict[str, Any]) -> "ClerkIdentity":
        """Identity from a Backend API user object."""
        addresses = profile.get("email_addresses") or []
        primary_id = profile.get("primary_email_address_id")
        email = next(
            (a.get("email_address") for a in addresses if a.get("id") == primary_id),
            None,
        )
        if email is None and addresses:
            email = addresses[0].get("email_address")
        parts = [profile.get("first_name"), profile.get("last_name")]
        return cls(
            clerk_user_id=profile["id"],
            email=email,
            name=" ".join(p for p in parts if p) or None,
            image_url=profile.get("image_url"),
        )


class ClerkAuthenticator:
    """
    Verifies Clerk session tokens against the instance's JWKS.
    """

    def __init__(
        self,
        jwks_url: Optional[str] = None,
        issuer: Optional[str] = None,
        authorized_parties: Optional[list[str]] = None,
        jwks_client: Optional[jwt.PyJWKClient] = None,
    ):
        settings = get_settings().clerk
        self._jwks_url = jwks_url or settings.jwks_url
        self._issuer = issuer or settings.issuer
        self._authorized_parties = (
            authorized_parties
            if authorized_parties is not None
            else settings.authorized_parties_list
        )
        self._leeway = settings.leeway_seconds
        self._jwks_client = jwks_client

    @property
    def is_configured(self) -> bool:
        return bool(self._jwks_url) or self._jwks_client is not None

    def _get_jwks_client(self) -> jwt.PyJWKClient:
        if self._jwks_client is None:
            if not self._jwks_url:
                raise AuthenticationError("CLERK_JWKS_URL not configured")
            self._jwks_client = jwt.PyJWKClient(self._jwks_url, cache_keys=True)
        return self._jwks_client

    def verify_token(self, token: str) -> ClerkIdentity:
        """
        Verify a session token and return the identity it carries.

        Raises:
            AuthenticationError: If the token is missing, expired, signed
                by an unknown key or issued for another origin
        """
        if not token:
            raise AuthenticationError("Missing session token")

        try:
            signing_key = self._get_jwks_client().get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                issuer=self._issuer,
                leeway=self._leeway,
                options={"verify_aud": False, "require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Session expired")
        except (jwt.InvalidTokenError, jwt.PyJWKClientError) as e:
            logger.info("clerk_token_rejected", error=str(e))
            raise AuthenticationError("Invalid session token")

        azp = claims.get("azp")
        if azp and self._authorized_parties and azp not in self._authorized_parties:
            logger.info("clerk_token_rejected", error="unauthorized party", azp=azp)
            raise AuthenticationError("Invalid session token")

        return ClerkIdentity.from_claims(claims)


class ClerkUserDirectory:
    """
    Reads user profiles from the Clerk Backend API.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings().clerk
        self._secret_key = secret_key or settings.secret_key
        self._api_url = (api_url or settings.api_url).rstrip("/")
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._secret_key)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _fetch_user(self, clerk_user_id: str) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self._api_url,
            transport=self._transport,
            timeout=10.0,
        ) as client:
            return await client.get(
                f"/users/{clerk_user_id}",
                headers={"Authorization": f"Bearer {self._secret_key}"},
            )

    async def get_identity(self, clerk_user_id: str) -> ClerkIdentity:
        """
        Raises:
            AuthenticationError: If the directory isn't configured, the
                user doesn't exist, or Clerk can't be reached
        """
        if not self.is_configured:
            raise AuthenticationError("CLERK_SECRET_KEY not configured")

        try:
            response = await self._fetch_user(clerk_user_id)
            if response.status_code == httpx.codes.NOT_FOUND:
                raise AuthenticationError("Unknown Clerk user")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("clerk_profile_fetch_failed", clerk_user_id=clerk_user_id, error=str(e))
            raise AuthenticationError("Could not load Clerk user profile")

        identity = ClerkIdentity.from_profile(response.json())
        logger.info("clerk_profile_loaded", clerk_user_id=identity.clerk_user_id)
        return identity


class AuthenticationError(Exception):
    """The request does not carry a valid Clerk session."""
    pass
