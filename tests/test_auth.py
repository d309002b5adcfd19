"""
Tests for Clerk session verification with locally signed tokens, and
for the Backend API profile lookup against a mock transport.
"""

import asyncio
import time
from types import SimpleNamespace

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from wealth.services.auth import (
    AuthenticationError,
    ClerkAuthenticator,
    ClerkIdentity,
    ClerkUserDirectory,
)


ISSUER = "https://clerk.example.test"


@pytest.fixture(scope="module")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def authenticator(signing_key):
    class _Keys:
        def get_signing_key_from_jwt(self, token):
            return SimpleNamespace(key=signing_key.public_key())

    return ClerkAuthenticator(
        issuer=ISSUER,
        authorized_parties=["http://localhost:8501"],
        jwks_client=_Keys(),
    )


def _token(key, **claims):
    now = int(time.time())
    payload = {"sub": "user_2abc", "iss": ISSUER, "iat": now, "exp": now + 60}
    payload.update(claims)
    return jwt.encode(payload, key, algorithm="RS256")


class TestVerifyToken:

    def test_valid_token(self, authenticator, signing_key):
        token = _token(
            signing_key,
            email="ana@example.com",
            first_name="Ana",
            last_name="Lopes",
            azp="http://localhost:8501",
        )

        identity = authenticator.verify_token(token)

        assert identity == ClerkIdentity(
            clerk_user_id="user_2abc",
            email="ana@example.com",
            name="Ana Lopes",
        )

    def test_missing_token(self, authenticator):
        with pytest.raises(AuthenticationError, match="Missing session token"):
            authenticator.verify_token("")

    def test_expired_token(self, authenticator, signing_key):
        token = _token(signing_key, exp=int(time.time()) - 3600)
        with pytest.raises(AuthenticationError, match="Session expired"):
            authenticator.verify_token(token)

    def test_wrong_key(self, authenticator):
        other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        with pytest.raises(AuthenticationError, match="Invalid session token"):
            authenticator.verify_token(_token(other))

    def test_wrong_issuer(self, authenticator, signing_key):
        with pytest.raises(AuthenticationError, match="Invalid session token"):
            authenticator.verify_token(_token(signing_key, iss="https://evil.example.test"))

    def test_unauthorized_party(self, authenticator, signing_key):
        token = _token(signing_key, azp="https://evil.example.test")
        with pytest.raises(AuthenticationError, match="Invalid session token"):
            authenticator.verify_token(token)

    def test_garbage(self, authenticator):
        with pytest.raises(AuthenticationError):
            authenticator.verify_token("not.a.jwt")


class TestClerkIdentity:

    def test_name_claim_wins(self):
        identity = ClerkIdentity.from_claims({"sub": "u", "name": "Ana", "first_name": "X"})
        assert identity.name == "Ana"

    def test_picture_fallback(self):
        identity = ClerkIdentity.from_claims({"sub": "u", "picture": "https://img.example.test/a.png"})
        assert identity.image_url == "https://img.example.test/a.png"
        assert identity.name is None

    def test_profile_uses_primary_email(self):
        identity = ClerkIdentity.from_profile({
            "id": "user_2abc",
            "primary_email_address_id": "idn_2",
            "email_addresses": [
                {"id": "idn_1", "email_address": "old@example.com"},
                {"id": "idn_2", "email_address": "ana@example.com"},
            ],
            "first_name": "Ana",
            "last_name": None,
            "image_url": "https://img.example.test/a.png",
        })

        assert identity.email == "ana@example.com"
        assert identity.name == "Ana"
        assert identity.image_url == "https://img.example.test/a.png"

    def test_profile_without_primary_takes_first_email(self):
        identity = ClerkIdentity.from_profile({
            "id": "user_2abc",
            "email_addresses": [{"id": "idn_1", "email_address": "ana@example.com"}],
        })
        assert identity.email == "ana@example.com"
        assert identity.name is None


PROFILE = {
    "id": "user_2abc",
    "primary_email_address_id": "idn_1",
    "email_addresses": [{"id": "idn_1", "email_address": "ana@example.com"}],
    "first_name": "Ana",
    "last_name": "Lopes",
}


def directory(handler, secret_key="sk_test_123"):
    return ClerkUserDirectory(
        secret_key=secret_key,
        api_url="https://api.clerk.example.test/v1",
        transport=httpx.MockTransport(handler),
    )


class TestClerkUserDirectory:
    """Profile lookup through the Clerk Backend API."""

    def test_fetches_profile(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=PROFILE)

        identity = asyncio.run(directory(handler).get_identity("user_2abc"))

        assert identity == ClerkIdentity(
            clerk_user_id="user_2abc",
            email="ana@example.com",
            name="Ana Lopes",
        )
        assert requests[0].url.path == "/v1/users/user_2abc"
        assert requests[0].headers["Authorization"] == "Bearer sk_test_123"

    def test_unknown_user(self):
        def handler(request):
            return httpx.Response(404, json={"errors": [{"code": "resource_not_found"}]})

        with pytest.raises(AuthenticationError, match="Unknown Clerk user"):
            asyncio.run(directory(handler).get_identity("user_gone"))

    def test_rejected_key(self):
        def handler(request):
            return httpx.Response(401, json={"errors": [{"code": "authentication_invalid"}]})

        with pytest.raises(AuthenticationError, match="Could not load Clerk user profile"):
            asyncio.run(directory(handler).get_identity("user_2abc"))

    def test_not_configured(self, monkeypatch):
        monkeypatch.delenv("CLERK_SECRET_KEY", raising=False)

        unconfigured = directory(lambda request: httpx.Response(200, json=PROFILE), secret_key=None)

        assert unconfigured.is_configured is False
        with pytest.raises(AuthenticationError, match="CLERK_SECRET_KEY not configured"):
            asyncio.run(unconfigured.get_identity("user_2abc"))
