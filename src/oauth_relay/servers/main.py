"""Starlette application for the GitHub OAuth relay."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from oauth_relay.config import RelayConfig
from oauth_relay.servers.middleware import METRICS_PATH, RequestContextMiddleware
from oauth_relay.servers.token import TokenExchangeHandler, token
from oauth_relay.utils.metrics import MetricsCollector

logger = logging.getLogger("oauth-relay.server.main")

HEALTH_PATH = "/health"
TOKEN_PATH = "/v1/github/token"


async def health_check(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint for scraping."""
    metrics_collector: MetricsCollector = request.app.state.metrics
    content, content_type = metrics_collector.generate_metrics()
    return Response(content, media_type=content_type)


def create_app(
    config: RelayConfig,
    http_client: httpx.AsyncClient | None = None,
    metrics: MetricsCollector | None = None,
) -> Starlette:
    """Build the relay application.

    Args:
        config: Validated relay configuration.
        http_client: Client for upstream calls. If not provided, each
            application lifespan opens a fresh one and closes it on
            shutdown; a provided client is left open for its owner.
        metrics: Metrics collector. A new one is created if not provided.

    Returns:
        The Starlette application.
    """
    owns_http_client = http_client is None
    if metrics is None:
        metrics = MetricsCollector()

    token_handler = TokenExchangeHandler(
        secrets=config.secrets,
        allowed_origins=config.allowed_origins,
        http_client=http_client,
        token_url=config.token_url,
    )

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        if owns_http_client:
            token_handler.http_client = httpx.AsyncClient()
        logger.info(
            "GitHub OAuth relay ready",
            extra={
                "apps": len(config.secrets),
                "allowed_origins": list(config.allowed_origins),
                "environment": config.environment,
            },
        )
        try:
            yield
        finally:
            if owns_http_client and token_handler.http_client is not None:
                await token_handler.http_client.aclose()
                token_handler.http_client = None
            logger.info("GitHub OAuth relay stopped")

    routes = [
        Route(METRICS_PATH, metrics_endpoint, methods=["GET"]),
        Route(HEALTH_PATH, health_check, methods=["GET"]),
        Route(TOKEN_PATH, token, methods=["POST"]),
    ]

    # First entry is outermost: context and counting wrap the CORS gate
    middleware = [
        Middleware(RequestContextMiddleware, metrics=metrics),
        Middleware(
            CORSMiddleware,
            allow_origins=list(config.allowed_origins),
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        ),
    ]

    app = Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.config = config
    app.state.metrics = metrics
    app.state.token_handler = token_handler
    return app
