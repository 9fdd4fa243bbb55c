import uuid
from dataclasses import dataclass

from starlette.requests import Request

from oauth_relay.utils.logging import RequestLoggerAdapter, get_request_logger

REQUEST_CONTEXT_STATE_KEY = "relay_context"


@dataclass(frozen=True)
class RequestContext:
    """Per-request correlation data handed to every handler."""

    request_id: str
    logger: RequestLoggerAdapter
    client_ip: str | None = None

    @classmethod
    def new(cls, client_ip: str | None = None) -> "RequestContext":
        request_id = uuid.uuid4().hex
        return cls(request_id=request_id, logger=get_request_logger(request_id), client_ip=client_ip)


def get_request_context(request: Request) -> RequestContext:
    """Return the context attached by RequestContextMiddleware.

    Falls back to a fresh context when the app runs without the middleware.
    """
    context = request.scope.get("state", {}).get(REQUEST_CONTEXT_STATE_KEY)
    if context is None:
        context = RequestContext.new(request.client.host if request.client else None)
    return context
