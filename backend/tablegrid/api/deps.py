"""Dependency injection for FastAPI routes.

Shared objects live on app.state and are created in the lifespan. Route
handlers get them through Depends() and never build their own.
"""

import math

from fastapi import Depends, HTTPException, Request, status

from tablegrid.core.atelier import AtelierClient
from tablegrid.core.config import settings
from tablegrid.core.security import SAFE_METHODS, verify_csrf_token
from tablegrid.services.command_router import RouterDeps
from tablegrid.services.query_executor import QueryExecutor
from tablegrid.services.rate_limiter import RateLimiter, RateLimitExceeded
from tablegrid.services.session_store import SessionStore
from tablegrid.services.table_metadata import TableMetadataService

BEARER_PREFIX = "Bearer "


def extract_token(
    cookies: dict[str, str], authorization: str | None, query_token: str | None = None
) -> str | None:
    """Cookie first, then Authorization: Bearer, then ?token= (WebSocket only)."""
    token = cookies.get(settings.session.session_cookie_name)
    if token:
        return token
    if authorization and authorization.startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX):].strip() or None
    return query_token or None


def get_session_token(request: Request) -> str | None:
    return extract_token(request.cookies, request.headers.get("authorization"))


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_atelier_client(request: Request) -> AtelierClient:
    return request.app.state.atelier_client


def build_router_deps(client: AtelierClient) -> RouterDeps:
    return RouterDeps(
        metadata=TableMetadataService(client),
        executor=QueryExecutor(client),
    )


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def client_key(request: Request) -> str:
    return request.client.host if request.client else "anonymous"


async def enforce_rate_limit(
    request: Request, limiter: RateLimiter = Depends(get_rate_limiter)
) -> None:
    try:
        limiter.check(client_key(request))
    except RateLimitExceeded as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": "Too many requests, please try again later."},
            headers={"Retry-After": str(math.ceil(exc.retry_after))},
        ) from exc


def csrf_session_id(request: Request) -> str:
    """What a CSRF token is bound to: the session cookie, else the client."""
    return request.cookies.get(settings.session.session_cookie_name) or client_key(request)


async def require_csrf(request: Request) -> None:
    """Reject cookie-authenticated writes that do not echo the CSRF token.

    Requests without the session cookie carry no ambient credential (Bearer
    tokens are never sent by a browser on its own), so they pass.
    """
    if not settings.security.csrf_enabled or request.method in SAFE_METHODS:
        return
    if settings.session.session_cookie_name not in request.cookies:
        return
    ok = verify_csrf_token(
        csrf_session_id(request),
        request.headers.get(settings.security.csrf_header_name),
        request.cookies.get(settings.security.csrf_cookie_name),
    )
    if not ok:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Invalid or missing CSRF token"},
        )
