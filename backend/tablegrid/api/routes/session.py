"""Session endpoints: connect, disconnect, status, a stateless connection test, and
the CSRF token that cookie-authenticated writes must echo.

The session token travels in an HttpOnly cookie. Responses never include
the password, host or port.
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response

from tablegrid.api.deps import (
    csrf_session_id,
    get_atelier_client,
    get_session_store,
    get_session_token,
    require_csrf,
)
from tablegrid.core.atelier import AtelierClient
from tablegrid.core.config import settings
from tablegrid.core.errors import ErrorCode, UserError
from tablegrid.core.security import issue_csrf_token
from tablegrid.schemas.session import (
    ConnectionTestResponse,
    ConnectRequest,
    ConnectResponse,
    SessionServerInfo,
    SessionStatusResponse,
)
from tablegrid.services.session_store import SessionStore

router = APIRouter()
logger = structlog.stdlib.get_logger("tablegrid.session")

_STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.AUTH_FAILED: 401,
    ErrorCode.CONNECTION_TIMEOUT: 504,
}


def _raise_for(error: UserError) -> None:
    raise HTTPException(
        status_code=_STATUS_BY_CODE.get(error.code, 502),
        detail={"error": error.message, "code": error.code.value},
    )


def _set_session_cookie(response: Response, token: str) -> None:
    # Browser-session cookie: the server-side idle timeout decides expiry
    response.set_cookie(
        key=settings.session.session_cookie_name,
        value=token,
        httponly=True,
        samesite="strict",
        secure=not settings.is_development,
        path="/",
    )


@router.post("/connect", response_model=ConnectResponse, response_model_by_alias=True)
async def connect(
    body: ConnectRequest,
    response: Response,
    token: str | None = Depends(get_session_token),
    store: SessionStore = Depends(get_session_store),
    client: AtelierClient = Depends(get_atelier_client),
):
    """Check the credentials against the server, then open a session."""
    check = await client.test_connection(
        body.to_server_spec(), body.username, body.password
    )
    if not check.success:
        logger.info("connect_failed", username=body.username, code=check.error.code.value)
        _raise_for(check.error)

    # Reconnecting replaces whatever session this browser had
    if token:
        store.destroy_session(token)

    new_token = store.create_session(body.to_details())
    _set_session_cookie(response, new_token)
    logger.info("connected", username=body.username, namespace=body.namespace)
    return ConnectResponse(
        server=SessionServerInfo(namespace=body.namespace, username=body.username)
    )


@router.post("/disconnect", dependencies=[Depends(require_csrf)])
async def disconnect(
    response: Response,
    token: str | None = Depends(get_session_token),
    store: SessionStore = Depends(get_session_store),
):
    """End the session. Open WebSockets for it are closed with 4002."""
    if token:
        store.destroy_session(token)
    response.delete_cookie(settings.session.session_cookie_name, path="/")
    response.delete_cookie(settings.security.csrf_cookie_name, path="/")
    return {"status": "disconnected"}


@router.get("/session", response_model=SessionStatusResponse, response_model_by_alias=True)
async def session_status(
    token: str | None = Depends(get_session_token),
    store: SessionStore = Depends(get_session_store),
):
    record = store.validate(token)
    if record is None:
        raise HTTPException(
            status_code=401,
            detail={"error": "Not connected", "code": ErrorCode.AUTH_EXPIRED.value},
        )
    return SessionStatusResponse(
        server=SessionServerInfo(namespace=record.namespace, username=record.username),
        created_at=datetime.fromtimestamp(record.created_at, tz=timezone.utc).isoformat(),
        timeout_remaining=int(store.timeout_remaining(record)),
    )


@router.post(
    "/test-connection",
    response_model=ConnectionTestResponse,
    response_model_exclude_none=True,
)
async def test_connection(
    body: ConnectRequest,
    client: AtelierClient = Depends(get_atelier_client),
):
    """Check credentials without creating a session."""
    result = await client.test_connection(
        body.to_server_spec(), body.username, body.password
    )
    if result.success:
        return ConnectionTestResponse(success=True)
    return ConnectionTestResponse(success=False, error=result.error.to_payload())


@router.get("/csrf-token")
async def csrf_token(request: Request, response: Response):
    """Issue a CSRF token bound to the caller's session cookie."""
    token = issue_csrf_token(csrf_session_id(request))
    response.set_cookie(
        key=settings.security.csrf_cookie_name,
        value=token,
        httponly=True,
        samesite="strict",
        secure=not settings.is_development,
        path="/",
    )
    return {"csrfToken": token}
