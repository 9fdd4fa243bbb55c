"""Shared fixtures for the OAuth relay tests."""

import httpx
import pytest

from oauth_relay.config import RelayConfig
from oauth_relay.utils.credentials import SecretRecord, SecretRegistry
from oauth_relay.utils.origins import OriginAllowlist

APP_CLIENT_ID = "Iv1.app-client-id"
APP_CLIENT_SECRET = "app-super-secret-value-0123456789"
OTHER_CLIENT_ID = "Iv1.other-client-id"
OTHER_CLIENT_SECRET = "other-super-secret-value-9876543210"
ALLOWED_ORIGIN = "https://app.example.com"
REDIRECT_URI = f"{ALLOWED_ORIGIN}/auth/callback"

SUCCESS_PAYLOAD = {"access_token": "X", "token_type": "bearer", "scope": "repo"}
ERROR_PAYLOAD = {
    "error": "bad_verification_code",
    "error_description": "The code passed is incorrect or expired.",
    "error_uri": "https://docs.github.com/apps/troubleshooting",
}


def exchange_body(**overrides):
    """Build a valid exchange request body."""
    body = {
        "client_id": APP_CLIENT_ID,
        "code": "auth-code-123",
        "code_verifier": "verifier-abc",
        "redirect_uri": REDIRECT_URI,
    }
    body.update(overrides)
    return body


class UpstreamStub:
    """Records upstream requests and answers with a canned response."""

    def __init__(self, payload=None, status_code=200, exc=None, content=None):
        self.payload = SUCCESS_PAYLOAD if payload is None else payload
        self.status_code = status_code
        self.exc = exc
        self.content = content
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        if self.content is not None:
            return httpx.Response(self.status_code, content=self.content)
        return httpx.Response(self.status_code, json=self.payload)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def secret_registry():
    return SecretRegistry(
        [
            SecretRecord(name="app", client_id=APP_CLIENT_ID, client_secret=APP_CLIENT_SECRET),
            SecretRecord(
                name="other", client_id=OTHER_CLIENT_ID, client_secret=OTHER_CLIENT_SECRET
            ),
        ]
    )


@pytest.fixture
def allowlist():
    return OriginAllowlist([ALLOWED_ORIGIN, "http://localhost:5173"])


@pytest.fixture
def relay_config(secret_registry, allowlist):
    return RelayConfig(
        secrets=secret_registry,
        allowed_origins=allowlist,
        environment="test",
        token_url="https://github.test/login/oauth/access_token",
    )


@pytest.fixture
def upstream():
    return UpstreamStub()
