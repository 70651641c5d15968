"""AtelierClient transport tests against an httpx.MockTransport."""

import asyncio
import base64
import json

import httpx
import pytest

from tablegrid.core.atelier import AtelierClient, build_query_url, encode_namespace
from tablegrid.core.errors import ErrorCode
from tablegrid.schemas.table import ServerSpec

USERNAME = "_SYSTEM"
PASSWORD = "SYS"


def _client(handler, timeout: float = 5.0) -> AtelierClient:
    return AtelierClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)), timeout)


class TestUrls:
    def test_namespace_percent_is_encoded(self):
        assert encode_namespace("%SYS") == "%25SYS"
        assert encode_namespace("USER") == "USER"

    def test_query_url(self, server_spec):
        assert (
            build_query_url(server_spec, "%SYS")
            == "http://iris.local:52773/api/atelier/v1/%25SYS/action/query"
        )

    def test_custom_prefix_and_https(self):
        spec = ServerSpec(scheme="https", host="h", port=443, path_prefix="iris/api/atelier")
        assert build_query_url(spec, "USER") == "https://h:443/iris/api/atelier/v1/USER/action/query"


class TestExecuteQuery:
    async def test_sends_query_parameters_and_basic_auth(self, atelier_client, fake_atelier, server_spec):
        result = await atelier_client.execute_query(
            server_spec, "USER", USERNAME, PASSWORD, "SELECT COUNT(*) AS total FROM x", ["a"]
        )
        assert result.success
        assert result.rows == [{"total": 120}]

        request = fake_atelier.requests[-1]
        assert request.method == "POST"
        assert request.url.path == "/api/atelier/v1/USER/action/query"
        assert request.headers["accept"] == "application/json"
        expected = base64.b64encode(f"{USERNAME}:{PASSWORD}".encode()).decode()
        assert request.headers["authorization"] == f"Basic {expected}"
        assert json.loads(request.content) == {
            "query": "SELECT COUNT(*) AS total FROM x",
            "parameters": ["a"],
        }

    async def test_wrong_password_is_auth_failed(self, atelier_client, server_spec):
        result = await atelier_client.execute_query(
            server_spec, "USER", USERNAME, "wrong", "SELECT 1"
        )
        assert not result.success
        assert result.error.code is ErrorCode.AUTH_FAILED

    async def test_server_error_status(self, atelier_client, fake_atelier, server_spec):
        fake_atelier.status_override = 500
        result = await atelier_client.execute_query(
            server_spec, "USER", USERNAME, PASSWORD, "SELECT 1"
        )
        assert result.error.code is ErrorCode.CONNECTION_FAILED
        assert result.error.message == "Server returned status 500"

    async def test_application_error_in_body(self, atelier_client, server_spec):
        result = await atelier_client.execute_query(
            server_spec, "USER", USERNAME, PASSWORD, "VACUUM"
        )
        assert result.error.code is ErrorCode.UNKNOWN_ERROR
        assert "Unsupported statement" in result.error.message

    async def test_non_json_body(self, server_spec):
        client = _client(lambda request: httpx.Response(200, text="<html>login</html>"))
        result = await client.execute_query(server_spec, "USER", "u", "p", "SELECT 1")
        assert result.error.code is ErrorCode.UNKNOWN_ERROR
        assert result.error.message == (
            "Received unexpected response from server. Please try again."
        )

    async def test_missing_content_yields_no_rows(self, server_spec):
        client = _client(lambda request: httpx.Response(200, json={"result": {}}))
        result = await client.execute_query(server_spec, "USER", "u", "p", "SELECT 1")
        assert result.success
        assert result.rows == []

    async def test_connect_error_is_unreachable(self, server_spec):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        result = await _client(refuse).execute_query(server_spec, "USER", "u", "p", "SELECT 1")
        assert result.error.code is ErrorCode.SERVER_UNREACHABLE

    async def test_transport_timeout(self, server_spec):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = await _client(slow).execute_query(server_spec, "USER", "u", "p", "SELECT 1")
        assert result.error.code is ErrorCode.CONNECTION_TIMEOUT

    async def test_deadline_enforced_for_hung_request(self, server_spec):
        async def hang(request):
            await asyncio.sleep(10)
            return httpx.Response(200, json={})

        result = await _client(hang, timeout=0.05).execute_query(
            server_spec, "USER", "u", "p", "SELECT 1"
        )
        assert result.error.code is ErrorCode.CONNECTION_TIMEOUT

    async def test_errors_do_not_leak_host(self, server_spec):
        def refuse(request):
            raise httpx.ConnectError("cannot connect to iris.local:52773", request=request)

        result = await _client(refuse).execute_query(server_spec, "USER", "u", "p", "SELECT 1")
        assert "iris.local" not in result.error.message
        assert "52773" not in result.error.message


class TestServerDescriptor:
    async def test_descriptor_lists_namespaces(self, atelier_client, fake_atelier, server_spec):
        result = await atelier_client.test_connection(server_spec, USERNAME, PASSWORD)
        assert result.success
        assert result.data["namespaces"] == ["%SYS", "USER"]
        assert fake_atelier.requests[-1].method == "GET"
        assert fake_atelier.requests[-1].url.path == "/api/atelier/"

    async def test_connection_test_with_bad_credentials(self, atelier_client, server_spec):
        result = await atelier_client.test_connection(server_spec, USERNAME, "nope")
        assert not result.success
        assert result.error.code is ErrorCode.AUTH_FAILED


@pytest.mark.parametrize("prefix", ["", None, "/api/atelier/"])
def test_default_prefix(prefix):
    spec = ServerSpec(host="h", port=1, path_prefix=prefix)
    assert spec.base_url == "http://h:1/api/atelier/"
