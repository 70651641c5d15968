"""Tests for Prometheus metrics.

Run with: pytest tests/test_metrics.py -v
"""

from prometheus_client import REGISTRY, generate_latest

from tablegrid.core.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    remote_query_duration_seconds,
    sessions_expired_total,
    websocket_commands_total,
)


def test_registry_contains_expected_metrics():
    metric_names = {m.name for m in REGISTRY.collect()}
    expected = [
        "tablegrid_http_requests",
        "tablegrid_http_request_duration_seconds",
        "tablegrid_remote_query_duration_seconds",
        "tablegrid_query_result_rows",
        "tablegrid_websocket_connections_active",
        "tablegrid_websocket_messages_sent",
        "tablegrid_websocket_commands",
        "tablegrid_sessions_active",
        "tablegrid_sessions_expired",
        "tablegrid_rate_limit_checks",
    ]
    for name in expected:
        # prometheus_client may strip _total suffix in the registry
        assert any(name in m for m in metric_names), (
            f"Metric {name} not found in registry. Available: {metric_names}"
        )


def test_counter_increment():
    before = http_requests_total.labels(
        method="GET", path="/test", status=200
    )._value.get()
    http_requests_total.labels(method="GET", path="/test", status=200).inc()
    after = http_requests_total.labels(
        method="GET", path="/test", status=200
    )._value.get()
    assert after == before + 1


def test_histogram_observe():
    http_request_duration_seconds.labels(method="GET", path="/test").observe(0.123)
    remote_query_duration_seconds.labels(
        operation="getTableData", outcome="ok"
    ).observe(0.05)


def test_generate_latest_produces_valid_output():
    text = generate_latest().decode("utf-8")
    assert "tablegrid_http_requests_total" in text
    assert "tablegrid_http_request_duration_seconds" in text


def test_command_counter_labels():
    websocket_commands_total.labels(command="requestData", event="tableData").inc()
    websocket_commands_total.labels(command="unknown", event="error").inc()
    output = generate_latest().decode("utf-8")
    assert 'command="requestData"' in output
    assert 'command="unknown"' in output


def test_session_expiry_reasons():
    sessions_expired_total.labels(reason="destroyed").inc()
    output = generate_latest().decode("utf-8")
    assert 'reason="destroyed"' in output
