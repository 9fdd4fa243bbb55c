"""GitHub OAuth authorization code exchange endpoint.

POST /v1/github/token

The caller sends the public half of the exchange; the relay adds the
client secret registered for ``client_id`` and forwards the request to
GitHub. The secret never appears in a response.
"""

import json
from collections.abc import Mapping
from typing import Any

import httpx
from starlette.requests import Request
from starlette.responses import JSONResponse

from oauth_relay.config import GITHUB_TOKEN_URL
from oauth_relay.exceptions import RedirectURIError
from oauth_relay.servers.context import RequestContext, get_request_context
from oauth_relay.utils.credentials import SecretRegistry
from oauth_relay.utils.origins import OriginAllowlist

# Checked in this order; the first missing one is reported
REQUIRED_PARAMS = ("client_id", "code", "code_verifier", "redirect_uri")

INTERNAL_SERVER_ERROR = "Internal server error"

# Larger request bodies are answered with 413
MAX_BODY_BYTES = 100 * 1024


def _error_response(
    error: str, error_description: str | None = None, status_code: int = 400
) -> JSONResponse:
    """Create an error response.

    Args:
        error: Error code or message
        error_description: Optional error description
        status_code: HTTP status code

    Returns:
        JSONResponse with error details
    """
    response_data = {"error": error}
    if error_description is not None:
        response_data["error_description"] = error_description
    return JSONResponse(response_data, status_code=status_code)


class UpstreamResponseError(Exception):
    """The token endpoint answered with something other than an OAuth payload."""

    pass


class TokenExchangeHandler:
    """Exchanges authorization codes with GitHub on behalf of registered apps."""

    def __init__(
        self,
        secrets: SecretRegistry,
        allowed_origins: OriginAllowlist,
        http_client: httpx.AsyncClient | None = None,
        token_url: str = GITHUB_TOKEN_URL,
    ) -> None:
        """Initialize the handler.

        Args:
            secrets: Registry of client credentials.
            allowed_origins: Origins redirect URIs may point to.
            http_client: Client used for the upstream call. Set later by the
                application lifespan when not given.
            token_url: Upstream OAuth token endpoint.
        """
        self.secrets = secrets
        self.allowed_origins = allowed_origins
        self.http_client = http_client
        self.token_url = token_url

    async def exchange(self, body: Mapping[str, Any], context: RequestContext) -> JSONResponse:
        """Validate an exchange request and relay it upstream.

        Args:
            body: Parsed request body.
            context: Context of the current request.

        Returns:
            The upstream token payload (200), a client or upstream-reported
            error (400), or a generic failure (500).
        """
        log = context.logger

        for param in REQUIRED_PARAMS:
            value = body.get(param)
            if not isinstance(value, str) or not value:
                log.warning("Missing parameter", extra={"param": param})
                return _error_response(f"Missing {param} parameter")

        client_id = body["client_id"]
        code = body["code"]
        code_verifier = body["code_verifier"]
        redirect_uri = body["redirect_uri"]

        try:
            if not self.allowed_origins.is_allowed(redirect_uri):
                log.warning("Invalid redirect_uri received.", extra={"redirect_uri": redirect_uri})
                return _error_response("Invalid redirect_uri")
        except RedirectURIError:
            log.warning(
                "Invalid redirect_uri format received.", extra={"redirect_uri": redirect_uri}
            )
            return _error_response("Invalid redirect_uri format")

        secret = self.secrets.resolve(client_id)
        if secret is None:
            log.warning("Unknown client_id received.", extra={"client_id": client_id})
            return _error_response("Invalid client_id")

        try:
            log.info(
                "Exchanging code for token",
                extra={
                    "app": secret.name,
                    "client_id": client_id,
                    "redirect_uri": redirect_uri,
                    "has_code": bool(code),
                    "has_verifier": bool(code_verifier),
                    "ip": context.client_ip,
                },
            )

            if self.http_client is None:
                raise RuntimeError("Upstream HTTP client is not open")

            response = await self.http_client.post(
                self.token_url,
                headers={"Accept": "application/json"},
                json={
                    "client_id": secret.client_id,
                    "client_secret": secret.client_secret,
                    "code": code,
                    "code_verifier": code_verifier,
                    "redirect_uri": redirect_uri,
                },
            )
            data = response.json()
            if not isinstance(data, dict):
                raise UpstreamResponseError(
                    f"Expected a JSON object from the token endpoint, got {type(data).__name__}"
                )

            # Only the error fields are relayed, never the whole upstream body
            if data.get("error"):
                log.error(
                    "GitHub OAuth error",
                    extra={
                        "error": data["error"],
                        "description": data.get("error_description"),
                        "upstream_status": response.status_code,
                    },
                )
                return _error_response(data["error"], data.get("error_description"))

            if response.is_error:
                raise UpstreamResponseError(
                    f"Token endpoint returned HTTP {response.status_code} without an OAuth error"
                )

            log.info(
                "Token exchange successful",
                extra={
                    "has_access_token": bool(data.get("access_token")),
                    "has_verifier": bool(code_verifier),
                    "scope": data.get("scope"),
                    "token_type": data.get("token_type"),
                },
            )
            return JSONResponse(data)

        except Exception as e:
            log.error(
                "Error exchanging code for token", extra={"error": repr(e)}, exc_info=True
            )
            return _error_response(INTERNAL_SERVER_ERROR, status_code=500)


async def _read_body(request: Request, limit: int = MAX_BODY_BYTES) -> bytes | None:
    """Read the request body, or return None once it exceeds ``limit`` bytes."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > limit:
        return None

    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


async def token(request: Request) -> JSONResponse:
    """Starlette endpoint for POST /v1/github/token."""
    context = get_request_context(request)
    handler: TokenExchangeHandler = request.app.state.token_handler

    raw_body = await _read_body(request)
    if raw_body is None:
        context.logger.warning("Request body too large", extra={"limit": MAX_BODY_BYTES})
        return _error_response("Request body too large", status_code=413)

    if not raw_body.strip():
        body: Any = {}
    else:
        try:
            body = json.loads(raw_body)
        except ValueError:
            context.logger.warning("Request body is not valid JSON")
            return _error_response("Invalid JSON body")

    if not isinstance(body, dict):
        body = {}

    return await handler.exchange(body, context)
