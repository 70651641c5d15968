"""Central Prometheus metrics registry.

All application metrics are defined here to avoid scattered metric definitions
and ensure consistent naming/labeling.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("tablegrid_app", "Table grid server application info")

# --- HTTP ---
http_requests_total = Counter(
    "tablegrid_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
http_request_duration_seconds = Histogram(
    "tablegrid_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

# --- Remote API ---
remote_query_duration_seconds = Histogram(
    "tablegrid_remote_query_duration_seconds",
    "Duration of calls to the remote Atelier API in seconds",
    ["operation", "outcome"],
)
query_result_rows = Histogram(
    "tablegrid_query_result_rows",
    "Number of rows returned by a paginated read",
    buckets=[0, 1, 10, 50, 100, 500, 1000],
)

# --- WebSocket ---
websocket_connections_active = Gauge(
    "tablegrid_websocket_connections_active",
    "Number of active WebSocket connections",
)
websocket_messages_sent_total = Counter(
    "tablegrid_websocket_messages_sent_total",
    "Total WebSocket messages sent",
    ["event"],
)
websocket_commands_total = Counter(
    "tablegrid_websocket_commands_total",
    "Total WebSocket commands handled",
    ["command", "event"],
)

# --- Sessions ---
sessions_active = Gauge(
    "tablegrid_sessions_active",
    "Number of sessions currently held in the session store",
)
sessions_expired_total = Counter(
    "tablegrid_sessions_expired_total",
    "Sessions removed from the store",
    ["reason"],
)

# --- Rate limiting ---
rate_limit_checks_total = Counter(
    "tablegrid_rate_limit_checks_total",
    "Total rate limit checks",
    ["status"],
)
