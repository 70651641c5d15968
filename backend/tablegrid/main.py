"""Table grid server FastAPI application entry point."""

from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tablegrid.api.deps import enforce_rate_limit
from tablegrid.api.routes import health, metrics, session, ws
from tablegrid.core.atelier import AtelierClient
from tablegrid.core.config import settings
from tablegrid.core.logging_config import configure_logging
from tablegrid.core.metrics import app_info
from tablegrid.core.middleware import ObservabilityMiddleware, SecurityHeadersMiddleware
from tablegrid.services.connection_manager import ConnectionManager
from tablegrid.services.rate_limiter import RateLimiter
from tablegrid.services.session_store import SessionStore

configure_logging()

logger = structlog.stdlib.get_logger("tablegrid.main")

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle events."""
    app_info.info({"version": VERSION, "env": settings.app_env})

    # One pooled client for every remote call; tests may pre-set their own
    http_client = getattr(app.state, "http_client", None) or httpx.AsyncClient(
        timeout=settings.remote_api.remote_api_timeout,
        follow_redirects=False,
    )
    app.state.http_client = http_client
    app.state.atelier_client = AtelierClient(http_client)

    store = SessionStore()
    app.state.session_store = store
    manager = ConnectionManager(store.notifier)
    app.state.connection_manager = manager
    app.state.rate_limiter = RateLimiter()

    store.start_sweeper()
    manager.start_heartbeat()
    logger.info("startup_complete", session_timeout=store.timeout)

    yield

    # Shutdown: drop every session (closing their sockets), stop loops, close pool
    dropped = store.destroy_all()
    await manager.wait_closed()
    await manager.stop_heartbeat()
    await store.stop_sweeper()
    await http_client.aclose()
    app.state.http_client = None
    logger.info("shutdown_complete", sessions_dropped=dropped)


app = FastAPI(
    title="Table Grid",
    description="Browse and edit IRIS tables over the Atelier REST API",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(
    session.router,
    prefix="/api",
    tags=["session"],
    dependencies=[Depends(enforce_rate_limit)],
)
app.include_router(ws.router, tags=["websocket"])
app.include_router(metrics.router, tags=["metrics"])
