"""Health check endpoints. No authentication required.

- /health      : plain status check
- /health/live: liveness check (always 200)
- /health/ready: readiness check (shared objects initialised)

Readiness does not contact any Atelier server; which server a user talks
to is only known once they connect.
"""

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()
logger = structlog.stdlib.get_logger("tablegrid.health")


@router.get("/health")
async def health_check():
    """Plain status check."""
    return {"status": "healthy", "service": "tablegrid"}


@router.get("/health/live")
async def liveness():
    """Liveness: the process is up."""
    return {"status": "live"}


def _check_http_client(request: Request) -> dict:
    http = getattr(request.app.state, "http_client", None)
    if http is None or http.is_closed:
        return {"status": "error", "detail": "HTTP client not available", "_healthy": False}
    return {"status": "ok", "_healthy": True}


def _check_session_store(request: Request) -> dict:
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        return {"status": "error", "detail": "Session store not initialised", "_healthy": False}
    return {"status": "ok", "sessions": len(store), "_healthy": True}


@router.get("/health/ready")
async def readiness(request: Request):
    """Readiness. Checks the shared HTTP client and session store."""
    checks: dict[str, dict] = {
        "http_client": _check_http_client(request),
        "session_store": _check_session_store(request),
    }
    healthy = True
    for name, result in checks.items():
        if not result.pop("_healthy", True):
            healthy = False
            logger.warning("readiness_check_failed", dependency=name)

    return JSONResponse(
        content={"status": "ready" if healthy else "not_ready", "checks": checks},
        status_code=200 if healthy else 503,
    )
