"""ASGI middleware attaching a request context and counting requests."""

import time
from collections.abc import Callable
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.routing import BaseRoute, Match

from oauth_relay.servers.context import REQUEST_CONTEXT_STATE_KEY, RequestContext
from oauth_relay.utils.metrics import MetricsCollector

METRICS_PATH = "/metrics"
REQUEST_ID_HEADER = "X-Request-ID"

# Checked in order; the first one present wins
_CLIENT_IP_HEADERS = (
    b"x-client-ip",
    b"x-forwarded-for",
    b"cf-connecting-ip",
    b"x-real-ip",
)


def get_client_ip(scope: dict) -> str | None:
    """Extract the caller's IP from proxy headers or the socket peer."""
    headers = dict(scope.get("headers") or [])
    for name in _CLIENT_IP_HEADERS:
        value = headers.get(name)
        if value:
            # X-Forwarded-For is "client, proxy1, proxy2"
            candidate = value.decode("latin-1").split(",")[0].strip()
            if candidate:
                return candidate

    client = scope.get("client")
    if client:
        return client[0]
    return None


def match_route(scope: dict) -> str | None:
    """Return the path pattern of the route that handles this scope.

    The pattern (not the raw path) is used as a metrics label so that label
    cardinality stays bounded.
    """
    app = scope.get("app")
    routes: list[BaseRoute] = getattr(getattr(app, "router", None), "routes", [])

    partial: str | None = None
    for route in routes:
        match, _ = route.matches(scope)
        if match == Match.FULL:
            return getattr(route, "path", None)
        if match == Match.PARTIAL and partial is None:
            partial = getattr(route, "path", None)
    return partial


class RequestContextMiddleware:
    """Attach a RequestContext to every HTTP request and count it on completion.

    The counter is incremented in one place for successful responses, error
    responses and unhandled exceptions alike. Metrics scrapes and CORS
    preflight requests are not counted.
    """

    def __init__(self, app: Any, metrics: MetricsCollector) -> None:
        self.app = app
        self.metrics = metrics

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        client_ip = get_client_ip(scope)
        context = RequestContext.new(client_ip)
        request_id = context.request_id

        # Copy the scope rather than mutating the server's
        scope = dict(scope)
        scope["state"] = {**scope.get("state", {}), REQUEST_CONTEXT_STATE_KEY: context}

        method = scope.get("method", "")
        path = scope.get("path", "")
        route = match_route(scope)
        status_code = 500

        async def send_with_request_id(message: dict) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message).append(REQUEST_ID_HEADER, request_id)
            await send(message)

        start_time = time.perf_counter()
        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            context.logger.info(
                "Request completed",
                extra={
                    "method": method,
                    "path": path,
                    "route": route,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                    "ip": client_ip,
                },
            )
            if self._should_count(method, path):
                self.metrics.record_request(method, route, status_code)

    @staticmethod
    def _should_count(method: str, path: str) -> bool:
        return method != "OPTIONS" and path.rstrip("/") != METRICS_PATH
