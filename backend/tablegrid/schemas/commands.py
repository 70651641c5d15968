"""Per-command payload models for the WebSocket protocol.

Inbound:  {"command": "<name>", "payload": {...}}
Outbound: {"event": "<name>", "payload": {...}}

Each command name maps to exactly one payload model. Payloads are validated
before dispatch; a payload that does not fit its model never reaches a
service.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, Strict

from tablegrid.core.config import settings
from tablegrid.schemas.table import CamelModel, FilterCriterion

MAX_PAGE_SIZE = settings.grid.max_page_size

# Strict: 2.0 or "2" is rejected, not coerced
PageNumber = Annotated[int, Strict(), Field(ge=1)]
PageSize = Annotated[int, Strict(), Field(ge=1, le=MAX_PAGE_SIZE)]


class EmptyPayload(CamelModel):
    pass


class GetTablesPayload(CamelModel):
    namespace: str = Field(min_length=1)


class SelectTablePayload(CamelModel):
    namespace: str = Field(min_length=1)
    table_name: str = Field(min_length=1)
    page_size: PageSize | None = None


class GridQueryPayload(CamelModel):
    """Filter and sort state shared by every read command."""

    filters: list[FilterCriterion] = []
    sort_column: str | None = None
    sort_direction: str | None = None


class RequestDataPayload(GridQueryPayload):
    # 1-based; defaults to the page last loaded on this connection
    page: PageNumber | None = None
    page_size: PageSize | None = None


class RefreshPayload(RequestDataPayload):
    pass


class PaginatePayload(GridQueryPayload):
    direction: Literal["next", "prev"]
    current_page: PageNumber | None = None
    page_size: PageSize | None = None


class PageStepPayload(GridQueryPayload):
    """paginateNext / paginatePrev: the direction is in the command name."""

    current_page: PageNumber | None = None
    page_size: PageSize | None = None


class SaveCellPayload(CamelModel):
    column_name: str = Field(min_length=1)
    new_value: Any = None
    old_value: Any = None
    primary_key_column: str = Field(min_length=1)
    primary_key_value: Any
    row_index: int | None = None
    col_index: int | None = None


class InsertRowPayload(CamelModel):
    columns: list[str] = Field(min_length=1)
    values: list[Any]
    new_row_index: int | None = None


class DeleteRowPayload(CamelModel):
    primary_key_column: str = Field(min_length=1)
    primary_key_value: Any
    row_index: int | None = None


COMMAND_PAYLOADS: dict[str, type[BaseModel]] = {
    "getNamespaces": EmptyPayload,
    "getTables": GetTablesPayload,
    "selectTable": SelectTablePayload,
    "requestData": RequestDataPayload,
    "refresh": RefreshPayload,
    "paginate": PaginatePayload,
    "paginateNext": PageStepPayload,
    "paginatePrev": PageStepPayload,
    "saveCell": SaveCellPayload,
    "insertRow": InsertRowPayload,
    "deleteRow": DeleteRowPayload,
}

# Older clients still send these names
COMMAND_ALIASES: dict[str, str] = {
    "refreshData": "refresh",
    "updateRow": "saveCell",
}

TABLE_COMMANDS = frozenset(
    {
        "requestData",
        "refresh",
        "paginate",
        "paginateNext",
        "paginatePrev",
        "saveCell",
        "insertRow",
        "deleteRow",
    }
)


def resolve_command(command: str) -> str:
    return COMMAND_ALIASES.get(command, command)

