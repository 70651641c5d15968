"""WebSocket endpoint carrying grid commands and events.

The session token is read from the cookie, a bearer header or ?token= at
handshake. Each connection gets its own BrowsingContext; the session is
re-validated on every message so activity keeps it alive and an expired
session stops the connection.

Close codes:
    4001  no valid session at handshake
    4002  session expired or destroyed (a sessionExpired event is sent first)
    1009  message larger than the configured limit
"""

import json
import uuid

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tablegrid.api.deps import build_router_deps, extract_token
from tablegrid.core.config import settings
from tablegrid.core.errors import ErrorCode, create_error
from tablegrid.core.metrics import websocket_commands_total
from tablegrid.schemas.commands import COMMAND_PAYLOADS, resolve_command
from tablegrid.services.command_router import (
    LOADING_COMMANDS,
    BrowsingContext,
    CommandResult,
    handle_command,
)
from tablegrid.services.connection_manager import (
    WS_CLOSE_UNAUTHORIZED,
    ConnectionManager,
)
from tablegrid.services.session_store import SessionStore

logger = structlog.stdlib.get_logger("tablegrid.ws")

router = APIRouter()

WS_CLOSE_MESSAGE_TOO_BIG = 1009


def _error(code: ErrorCode, context: str, message: str | None = None) -> CommandResult:
    return CommandResult("error", create_error(code, context, message).to_payload())


def _parse_message(raw: str) -> tuple[str | None, object, CommandResult | None]:
    """Return (command, payload, error_result)."""
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        return None, None, _error(ErrorCode.INVALID_JSON, "websocket")
    if not isinstance(message, dict) or not isinstance(message.get("command"), str):
        return None, None, _error(
            ErrorCode.INVALID_MESSAGE,
            "websocket",
            'Invalid message: "command" must be a string',
        )
    return message["command"], message.get("payload"), None


async def _receive_text(websocket: WebSocket) -> str:
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(code=message.get("code", 1000))
    if message.get("text") is not None:
        return message["text"]
    return (message.get("bytes") or b"").decode("utf-8", errors="replace")


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Grid command channel.

    Inbound:  {"command": str, "payload": object}
    Outbound: {"event": str, "payload": object}
    """
    store: SessionStore = websocket.app.state.session_store
    manager: ConnectionManager = websocket.app.state.connection_manager

    token = extract_token(
        websocket.cookies,
        websocket.headers.get("authorization"),
        websocket.query_params.get("token"),
    )
    if store.validate(token) is None:
        # Accept first so the browser sees the close code
        await websocket.accept()
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED, reason="Unauthorized")
        logger.info("websocket_rejected", reason="no valid session")
        return

    connection_id = uuid.uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(connection_id=connection_id)
    await manager.connect(websocket, token)

    context = BrowsingContext()
    deps = build_router_deps(websocket.app.state.atelier_client)
    max_bytes = settings.grid.ws_max_message_bytes

    try:
        while True:
            raw = await _receive_text(websocket)
            if len(raw.encode("utf-8")) > max_bytes:
                logger.warning("websocket_message_too_large", size=len(raw))
                await websocket.close(code=WS_CLOSE_MESSAGE_TOO_BIG, reason="Message too large")
                break

            session = store.validate(token)
            if session is None:
                # The expiry listener has already scheduled the 4002 close
                await manager.wait_closed()
                break

            command, payload, problem = _parse_message(raw)
            if problem is not None:
                await manager.send_event(websocket, problem.event, problem.payload)
                continue

            name = resolve_command(command)
            loading = name in LOADING_COMMANDS
            if loading:
                await manager.send_event(
                    websocket, "tableLoading", {"loading": True, "context": name}
                )

            result = await handle_command(command, payload, session, context, deps)

            if loading:
                await manager.send_event(
                    websocket, "tableLoading", {"loading": False, "context": ""}
                )
            await manager.send_event(websocket, result.event, result.payload)

            label = name if name in COMMAND_PAYLOADS else "unknown"
            websocket_commands_total.labels(command=label, event=result.event).inc()

    except WebSocketDisconnect:
        logger.info("websocket_disconnected")
    except Exception:
        logger.exception("websocket_error")
    finally:
        manager.disconnect(websocket)
        context.clear()
        structlog.contextvars.unbind_contextvars("connection_id")
