"""Pydantic schemas for the HTTP session endpoints."""

from pydantic import Field

from tablegrid.schemas.table import CamelModel, ServerSpec
from tablegrid.services.session_store import ConnectionDetails


class ConnectRequest(CamelModel):
    """Credentials for one server. The password is never echoed back."""

    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    namespace: str = ""
    username: str = Field(min_length=1)
    password: str = Field(repr=False)
    path_prefix: str = ""
    use_https: bool = Field(default=False, alias="useHTTPS")

    def to_server_spec(self) -> ServerSpec:
        return ServerSpec(
            scheme="https" if self.use_https else "http",
            host=self.host,
            port=self.port,
            path_prefix=self.path_prefix,
        )

    def to_details(self) -> ConnectionDetails:
        return ConnectionDetails(
            host=self.host,
            port=self.port,
            namespace=self.namespace,
            username=self.username,
            password=self.password,
            path_prefix=self.path_prefix,
            use_https=self.use_https,
        )


class SessionServerInfo(CamelModel):
    namespace: str
    username: str


class ConnectResponse(CamelModel):
    status: str = "connected"
    server: SessionServerInfo


class SessionStatusResponse(CamelModel):
    status: str = "connected"
    server: SessionServerInfo
    created_at: str
    # Seconds until the session expires if left idle
    timeout_remaining: int


class ConnectionTestResponse(CamelModel):
    success: bool
    error: dict | None = None
