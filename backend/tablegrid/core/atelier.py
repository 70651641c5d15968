"""Async client for the InterSystems Atelier REST API.

Thin transport: one request per call, Basic auth on every request, a hard
deadline, and classification of every outcome into a QueryResult. SQL
construction lives in the query builder; nothing here raises to callers.

Endpoints:
    GET  {base}                                  server descriptor (namespaces)
    POST {base}v1/{namespace}/action/query       {"query", "parameters"}
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from tablegrid.core.config import settings
from tablegrid.core.errors import (
    ErrorCode,
    UserError,
    classify_body,
    classify_exception,
    classify_status,
    create_error,
)
from tablegrid.core.metrics import remote_query_duration_seconds
from tablegrid.schemas.table import ServerSpec

logger = structlog.stdlib.get_logger("tablegrid.atelier")


@dataclass
class QueryResult:
    """Outcome of a data-access call. Exceptions never cross this boundary."""

    success: bool
    rows: list[dict] = field(default_factory=list)
    total_rows: int | None = None
    data: Any = None
    error: UserError | None = None

    @classmethod
    def failure(cls, error: UserError) -> "QueryResult":
        return cls(success=False, error=error)


def build_base_url(spec: ServerSpec) -> str:
    return spec.base_url


def encode_namespace(namespace: str) -> str:
    """System namespaces such as %SYS must reach the server as %25SYS."""
    return namespace.replace("%", "%25")


def build_query_url(spec: ServerSpec, namespace: str) -> str:
    base = build_base_url(spec).rstrip("/")
    return f"{base}/v1/{encode_namespace(namespace)}/action/query"


class AtelierClient:
    """Sends requests to an Atelier server over a shared httpx.AsyncClient."""

    def __init__(self, http: httpx.AsyncClient, timeout: float | None = None):
        self._http = http
        self._timeout = (
            timeout if timeout is not None else settings.remote_api.remote_api_timeout
        )

    @property
    def timeout(self) -> float:
        return self._timeout

    async def _request(
        self,
        method: str,
        url: str,
        username: str,
        password: str,
        operation: str,
        body: dict | None = None,
    ) -> tuple[Any, UserError | None]:
        """Issue one request and return (parsed_body, error)."""
        start = time.monotonic()
        parsed, error = await self._send(method, url, username, password, operation, body)
        outcome = "ok" if error is None else error.code.value.lower()
        remote_query_duration_seconds.labels(
            operation=operation, outcome=outcome
        ).observe(time.monotonic() - start)
        return parsed, error

    async def _send(
        self,
        method: str,
        url: str,
        username: str,
        password: str,
        operation: str,
        body: dict | None,
    ) -> tuple[Any, UserError | None]:
        try:
            response = await asyncio.wait_for(
                self._http.request(
                    method,
                    url,
                    json=body,
                    auth=(username, password),
                    headers={"Accept": "application/json"},
                    timeout=self._timeout,
                ),
                timeout=self._timeout,
            )
        except Exception as exc:
            error = classify_exception(exc, operation)
            logger.info(
                "remote_request_failed",
                operation=operation,
                code=error.code.value,
                exc_type=type(exc).__name__,
            )
            return None, error

        status_error = classify_status(response.status_code, operation)
        if status_error is not None:
            logger.info(
                "remote_request_rejected",
                operation=operation,
                status=response.status_code,
                code=status_error.code.value,
            )
            return None, status_error

        try:
            parsed = response.json()
        except ValueError:
            logger.warning("remote_response_unparseable", operation=operation)
            return None, create_error(
                ErrorCode.UNKNOWN_ERROR,
                operation,
                "Received unexpected response from server. Please try again.",
            )

        body_error = classify_body(parsed, operation)
        if body_error is not None:
            logger.info(
                "remote_request_errored",
                operation=operation,
                code=body_error.code.value,
            )
            return None, body_error

        return parsed, None

    async def execute_query(
        self,
        spec: ServerSpec,
        namespace: str,
        username: str,
        password: str,
        query: str,
        parameters: list | None = None,
        operation: str = "executeQuery",
    ) -> QueryResult:
        """Run one SQL statement. Rows come back as result.content."""
        url = build_query_url(spec, namespace)
        body, error = await self._request(
            "POST",
            url,
            username,
            password,
            operation,
            body={"query": query, "parameters": list(parameters or [])},
        )
        if error is not None:
            return QueryResult.failure(error)

        result = body.get("result") if isinstance(body, dict) else None
        content = result.get("content") if isinstance(result, dict) else None
        rows = content if isinstance(content, list) else []
        return QueryResult(success=True, rows=rows)

    async def get_server_descriptor(
        self, spec: ServerSpec, username: str, password: str
    ) -> QueryResult:
        """Fetch the root descriptor: {api, version, namespaces}."""
        body, error = await self._request(
            "GET", build_base_url(spec), username, password, "getServerDescriptor"
        )
        if error is not None:
            return QueryResult.failure(error)

        result = body.get("result") if isinstance(body, dict) else None
        content = result.get("content") if isinstance(result, dict) else None
        return QueryResult(success=True, data=content if isinstance(content, dict) else {})

    async def test_connection(
        self, spec: ServerSpec, username: str, password: str
    ) -> QueryResult:
        """Check credentials against the root endpoint."""
        result = await self.get_server_descriptor(spec, username, password)
        if result.success:
            descriptor = result.data or {}
            logger.info(
                "connection_test_succeeded",
                api_version=descriptor.get("api"),
                namespace_count=len(descriptor.get("namespaces") or []),
            )
        return result
