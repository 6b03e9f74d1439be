"""
Request correlation for journey API calls.

Every log line emitted while a request is served carries its request id,
and the id is echoed back in the response so clients and the identity
gateway can correlate their own logs with ours.
"""
import re
import time
import uuid
from typing import Callable, Optional
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog


logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# ids arriving from upstream end up verbatim in JSON logs
_REQUEST_ID_RE = re.compile(r'^[A-Za-z0-9._\-]{1,64}$')


def inbound_request_id(value: Optional[str]) -> Optional[str]:
    """Upstream request id if it is safe to log, else None"""
    if value and _REQUEST_ID_RE.match(value):
        return value
    return None


def route_template(request: Request) -> str:
    """Path template of the matched route, e.g. ``/api/v1/journeys/{journey_id}``"""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds the request id and logs one outcome line per request.

    Client errors (4xx) are logged as warnings, server errors as errors, so a
    rejected journey edit is visible without paging anyone.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = inbound_request_id(request.headers.get(REQUEST_ID_HEADER)) or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_host=request.client.host if request.client else None
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "http_request_failed",
                route=route_template(request),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                error=str(exc),
                error_type=type(exc).__name__
            )
            raise

        status = response.status_code
        log = logger.error if status >= 500 else logger.warning if status >= 400 else logger.info
        log(
            "http_request_completed",
            route=route_template(request),
            status_code=status,
            duration_ms=round((time.perf_counter() - started) * 1000, 2)
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
