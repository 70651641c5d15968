"""HTTP middleware: request observability and security headers."""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from tablegrid.core.metrics import http_request_duration_seconds, http_requests_total

REQUEST_ID_HEADER = "X-Request-ID"

# Scraped every few seconds; logging them would drown the access log
_UNLOGGED_PATHS = frozenset({"/metrics", "/health/live"})


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Binds a request_id to the log context and records per-route metrics.

    An inbound X-Request-ID is reused so a proxy's trace id survives. WebSocket
    scopes never reach dispatch; the endpoint binds its own connection_id.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger = structlog.stdlib.get_logger("tablegrid.http")
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            elapsed = time.perf_counter() - started

        route = request.scope.get("route")
        path = route.path if route else request.url.path
        http_requests_total.labels(
            method=request.method, path=path, status=response.status_code
        ).inc()
        http_request_duration_seconds.labels(
            method=request.method, path=path
        ).observe(elapsed)

        response.headers[REQUEST_ID_HEADER] = request_id
        if path not in _UNLOGGED_PATHS:
            logger.info(
                "request_completed",
                method=request.method,
                path=path,
                status=response.status_code,
                duration_ms=round(elapsed * 1000, 2),
            )

        structlog.contextvars.clear_contextvars()
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds browser hardening headers. Handlers may override any of them.

    connect-src allows the page's own WebSocket origin only.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        host = request.headers.get("host", "localhost")
        forwarded = request.headers.get("x-forwarded-proto", request.url.scheme)
        ws_origin = f"{'wss' if forwarded == 'https' else 'ws'}://{host}"

        headers = response.headers
        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("X-Frame-Options", "DENY")
        headers.setdefault("Referrer-Policy", "no-referrer")
        headers.setdefault(
            "Content-Security-Policy",
            "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
            f"img-src 'self' data:; connect-src 'self' {ws_origin}; font-src 'self'; "
            "object-src 'none'; frame-ancestors 'none'",
        )
        return response
