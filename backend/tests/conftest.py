"""Shared test fixtures.

The remote Atelier server is replaced by an in-process fake behind
httpx.MockTransport. Tests never require a running IRIS instance.
"""

import base64
import json
import re

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from tablegrid.core.atelier import AtelierClient
from tablegrid.main import app
from tablegrid.schemas.table import ColumnInfo, ServerSpec, TableSchema
from tablegrid.services.connection_manager import ConnectionManager
from tablegrid.services.rate_limiter import RateLimiter
from tablegrid.services.session_store import ConnectionDetails, SessionStore

USERNAME = "_SYSTEM"
PASSWORD = "SYS"

_TOP = re.compile(r"^SELECT TOP (\d+) ")
_VID = re.compile(r"%VID > (\d+)$")


class FakeAtelier:
    """Minimal Atelier server holding one table, Sample.Person(ID, Name).

    Understands exactly the statement shapes the query builder produces and
    records every request for assertions.
    """

    def __init__(self, row_count: int = 120):
        self.people = [{"ID": i, "Name": f"Person {i}"} for i in range(1, row_count + 1)]
        self.requests: list[httpx.Request] = []
        self.queries: list[dict] = []
        self.fail_count = False
        self.fail_queries_containing: str | None = None
        self.status_override: int | None = None

    @staticmethod
    def ok(content) -> httpx.Response:
        return httpx.Response(
            200, json={"status": {"errors": [], "summary": ""}, "result": {"content": content}}
        )

    @staticmethod
    def app_error(text: str) -> httpx.Response:
        return httpx.Response(
            200, json={"status": {"errors": [{"error": text}], "summary": text}, "result": {}}
        )

    def _authorised(self, request: httpx.Request) -> bool:
        expected = base64.b64encode(f"{USERNAME}:{PASSWORD}".encode()).decode()
        return request.headers.get("authorization") == f"Basic {expected}"

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_override is not None:
            return httpx.Response(self.status_override)
        if not self._authorised(request):
            return httpx.Response(401)

        if request.method == "GET":
            return self.ok({"api": 8, "version": "IRIS 2024.1", "namespaces": ["%SYS", "USER"]})

        body = json.loads(request.content)
        self.queries.append(body)
        sql = body["query"]
        params = body["parameters"]

        if self.fail_queries_containing and self.fail_queries_containing in sql:
            return self.app_error("SQLCODE: <-30>:<Table not found>")
        if "INFORMATION_SCHEMA.TABLES" in sql:
            return self.ok(
                [
                    {"TABLE_SCHEMA": "Sample", "TABLE_NAME": "Person"},
                    {"TABLE_SCHEMA": "Sample", "TABLE_NAME": "Company"},
                ]
            )
        if "INFORMATION_SCHEMA.COLUMNS" in sql:
            if params != ["Sample", "Person"]:
                return self.ok([])
            return self.ok(
                [
                    {
                        "COLUMN_NAME": "ID",
                        "DATA_TYPE": "INTEGER",
                        "IS_NULLABLE": "NO",
                        "NUMERIC_PRECISION": 10,
                        "NUMERIC_SCALE": 0,
                        "IS_IDENTITY": "YES",
                        "IS_GENERATED": "NO",
                    },
                    {
                        "COLUMN_NAME": "Name",
                        "DATA_TYPE": "VARCHAR",
                        "IS_NULLABLE": "YES",
                        "CHARACTER_MAXIMUM_LENGTH": 50,
                        "IS_IDENTITY": "NO",
                        "IS_GENERATED": "NO",
                    },
                ]
            )
        if sql.startswith("SELECT COUNT(*)"):
            if self.fail_count:
                return httpx.Response(500)
            return self.ok([{"total": len(self.people)}])
        if sql.startswith("SELECT TOP"):
            size = int(_TOP.match(sql).group(1))
            vid = _VID.search(sql)
            offset = int(vid.group(1)) if vid else 0
            rows = sorted(self.people, key=lambda r: r["ID"])
            return self.ok(rows[offset : offset + size])
        if sql.startswith(("UPDATE", "INSERT", "DELETE")):
            return self.ok([])
        return self.app_error(f"Unsupported statement: {sql}")


@pytest.fixture
def fake_atelier() -> FakeAtelier:
    return FakeAtelier()


@pytest.fixture
async def atelier_client(fake_atelier):
    """AtelierClient wired to the fake server."""
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_atelier.handler))
    yield AtelierClient(http, timeout=5.0)
    await http.aclose()


@pytest.fixture
def server_spec() -> ServerSpec:
    return ServerSpec(scheme="http", host="iris.local", port=52773)


@pytest.fixture
def person_schema() -> TableSchema:
    return TableSchema(
        table_name="Sample.Person",
        namespace="USER",
        columns=(
            ColumnInfo(
                name="ID", data_type="INTEGER", nullable=False, read_only=True, is_primary_key=True
            ),
            ColumnInfo(name="Name", data_type="VARCHAR", nullable=True, max_length=50),
        ),
    )


@pytest.fixture
def connection_details() -> ConnectionDetails:
    return ConnectionDetails(
        host="iris.local",
        port=52773,
        namespace="USER",
        username=USERNAME,
        password=PASSWORD,
    )


@pytest.fixture
async def client(fake_atelier) -> AsyncClient:
    """httpx AsyncClient wired to the FastAPI app with state set up by hand.

    ASGITransport does not run the lifespan, so the shared objects it would
    create are installed here instead.
    """
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_atelier.handler))
    store = SessionStore(timeout=1800, cleanup_interval=0)
    app.state.http_client = http
    app.state.atelier_client = AtelierClient(http, timeout=5.0)
    app.state.session_store = store
    app.state.connection_manager = ConnectionManager(store.notifier)
    app.state.rate_limiter = RateLimiter()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    await http.aclose()
    app.state.http_client = None
