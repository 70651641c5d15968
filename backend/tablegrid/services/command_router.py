"""Command dispatch for grid WebSocket connections.

handle_command() maps one inbound command to one outbound event. It never
raises: a missing session, a malformed payload, a missing table selection
and remote failures all come back as an "error" event (or a *Result event
with success=false for row edits).

Each connection owns a BrowsingContext. Two tabs on the same session have
two contexts and never see each other's table selection.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ValidationError

from tablegrid.core.atelier import QueryResult
from tablegrid.core.config import settings
from tablegrid.core.errors import ErrorCode, UserError, create_error
from tablegrid.schemas.commands import (
    COMMAND_PAYLOADS,
    TABLE_COMMANDS,
    DeleteRowPayload,
    EmptyPayload,
    GetTablesPayload,
    GridQueryPayload,
    InsertRowPayload,
    PageStepPayload,
    PaginatePayload,
    RequestDataPayload,
    SaveCellPayload,
    SelectTablePayload,
    resolve_command,
)
from tablegrid.schemas.table import FilterCriterion, TableSchema
from tablegrid.services.query_executor import QueryExecutor
from tablegrid.services.session_store import SessionRecord
from tablegrid.services.table_metadata import TableMetadataService

logger = logging.getLogger(__name__)

# Commands bracketed by tableLoading events on the wire
LOADING_COMMANDS = frozenset(
    {"selectTable", "requestData", "refresh", "paginate", "paginateNext", "paginatePrev"}
)


@dataclass
class BrowsingContext:
    namespace: str | None = None
    table_name: str | None = None
    schema: TableSchema | None = None
    page: int = 1
    page_size: int = field(default_factory=lambda: settings.grid.default_page_size)
    filters: list[FilterCriterion] = field(default_factory=list)
    sort_column: str | None = None
    sort_direction: str | None = None

    @property
    def has_table(self) -> bool:
        return bool(self.namespace and self.table_name and self.schema)

    def clear(self) -> None:
        self.namespace = None
        self.table_name = None
        self.schema = None
        self.page = 1
        self.filters = []
        self.sort_column = None
        self.sort_direction = None


@dataclass
class RouterDeps:
    metadata: TableMetadataService
    executor: QueryExecutor
    default_page_size: int = field(
        default_factory=lambda: settings.grid.default_page_size
    )


@dataclass
class CommandResult:
    event: str
    payload: dict[str, Any]

    def to_message(self) -> dict[str, Any]:
        return {"event": self.event, "payload": self.payload}


def error_result(
    code: ErrorCode, context: str, message: str | None = None
) -> CommandResult:
    return CommandResult("error", create_error(code, context, message).to_payload())


def _failed(result: QueryResult, context: str) -> CommandResult:
    error = result.error or create_error(ErrorCode.UNKNOWN_ERROR, context)
    payload = error.to_payload()
    payload["context"] = context
    return CommandResult("error", payload)


def _edit_error(error: UserError | None) -> dict[str, str] | None:
    if error is None:
        return None
    return {"message": error.message, "code": error.code.value}


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"Invalid {location}: {first.get('msg', 'invalid value')}"


def _table_data(
    result: QueryResult, page: int, page_size: int
) -> dict[str, Any]:
    return {
        "rows": result.rows,
        "totalRows": result.total_rows or 0,
        "page": page,
        "pageSize": page_size,
    }


async def _get_namespaces(
    payload: EmptyPayload,
    session: SessionRecord,
    context: BrowsingContext,
    deps: RouterDeps,
) -> CommandResult:
    result = await deps.metadata.get_namespaces(
        session.server_spec, session.username, session.password
    )
    if not result.success:
        return _failed(result, "getNamespaces")
    return CommandResult("namespaceList", {"namespaces": result.data})


async def _get_tables(
    payload: GetTablesPayload,
    session: SessionRecord,
    context: BrowsingContext,
    deps: RouterDeps,
) -> CommandResult:
    result = await deps.metadata.get_tables(
        session.server_spec, payload.namespace, session.username, session.password
    )
    if not result.success:
        return _failed(result, "getTables")
    if payload.namespace != context.namespace:
        # A table selected in the old namespace is no longer addressable
        context.clear()
    context.namespace = payload.namespace
    return CommandResult(
        "tableList", {"tables": result.data, "namespace": payload.namespace}
    )


async def _select_table(
    payload: SelectTablePayload,
    session: SessionRecord,
    context: BrowsingContext,
    deps: RouterDeps,
) -> CommandResult:
    spec = session.server_spec
    schema_result = await deps.metadata.get_table_schema(
        spec, payload.namespace, payload.table_name, session.username, session.password
    )
    if not schema_result.success:
        return _failed(schema_result, "selectTable")
    schema: TableSchema = schema_result.data

    page_size = payload.page_size or deps.default_page_size
    data = await deps.executor.get_table_data(
        spec, payload.namespace, schema, page_size, 0, session.username, session.password
    )
    if not data.success:
        # Previous table stays selected
        return _failed(data, "selectTable")

    context.clear()
    context.namespace = payload.namespace
    context.table_name = schema.table_name
    context.schema = schema
    context.page = 1
    context.page_size = page_size
    return CommandResult(
        "tableSelected",
        {
            "tableName": schema.table_name,
            "namespace": payload.namespace,
            "columns": [c.to_wire() for c in schema.columns],
            **_table_data(data, 1, page_size),
        },
    )


async def _load_page(
    command: str,
    payload: GridQueryPayload,
    page: int,
    page_size: int,
    session: SessionRecord,
    context: BrowsingContext,
    deps: RouterDeps,
) -> CommandResult:
    """Load an absolute 1-based page. Omitted filter/sort reuse the last view."""
    given = payload.model_fields_set
    filters = payload.filters if "filters" in given else context.filters
    sort_column = payload.sort_column if "sort_column" in given else context.sort_column
    sort_direction = (
        payload.sort_direction if "sort_direction" in given else context.sort_direction
    )

    result = await deps.executor.get_table_data(
        session.server_spec,
        context.namespace,
        context.schema,
        page_size,
        (page - 1) * page_size,
        session.username,
        session.password,
        filters=filters,
        sort_column=sort_column,
        sort_direction=sort_direction,
    )
    if not result.success:
        return _failed(result, command)

    context.page = page
    context.page_size = page_size
    context.filters = list(filters)
    context.sort_column = sort_column
    context.sort_direction = sort_direction
    return CommandResult("tableData", _table_data(result, page, page_size))


def _absolute_page(command: str):
    async def handler(
        payload: RequestDataPayload,
        session: SessionRecord,
        context: BrowsingContext,
        deps: RouterDeps,
    ) -> CommandResult:
        page = payload.page or context.page
        page_size = payload.page_size or context.page_size
        return await _load_page(command, payload, page, page_size, session, context, deps)

    return handler


def _step(current: int, direction: str) -> int:
    if direction == "next":
        return current + 1
    return max(1, current - 1)


async def _paginate(
    payload: PaginatePayload,
    session: SessionRecord,
    context: BrowsingContext,
    deps: RouterDeps,
) -> CommandResult:
    page = _step(payload.current_page or context.page, payload.direction)
    page_size = payload.page_size or context.page_size
    return await _load_page("paginate", payload, page, page_size, session, context, deps)


def _page_step(command: str, direction: str):
    async def handler(
        payload: PageStepPayload,
        session: SessionRecord,
        context: BrowsingContext,
        deps: RouterDeps,
    ) -> CommandResult:
        page = _step(payload.current_page or context.page, direction)
        page_size = payload.page_size or context.page_size
        return await _load_page(command, payload, page, page_size, session, context, deps)

    return handler


async def _save_cell(
    payload: SaveCellPayload,
    session: SessionRecord,
    context: BrowsingContext,
    deps: RouterDeps,
) -> CommandResult:
    column = context.schema.get_column(payload.column_name)
    if column is not None and column.read_only:
        error: UserError | None = create_error(
            ErrorCode.INVALID_INPUT,
            "saveCell",
            f"Column {payload.column_name} is read-only",
        )
        success = False
    else:
        result = await deps.executor.update_cell(
            session.server_spec,
            context.namespace,
            context.table_name,
            payload.column_name,
            payload.new_value,
            payload.primary_key_column,
            payload.primary_key_value,
            session.username,
            session.password,
        )
        error = result.error
        success = result.success

    response: dict[str, Any] = {
        "success": success,
        "rowIndex": payload.row_index,
        "colIndex": payload.col_index,
        "columnName": payload.column_name,
        "oldValue": payload.old_value,
        "newValue": payload.new_value,
        "primaryKeyValue": payload.primary_key_value,
    }
    if error is not None:
        response["error"] = _edit_error(error)
    return CommandResult("saveCellResult", response)


async def _insert_row(
    payload: InsertRowPayload,
    session: SessionRecord,
    context: BrowsingContext,
    deps: RouterDeps,
) -> CommandResult:
    result = await deps.executor.insert_row(
        session.server_spec,
        context.namespace,
        context.table_name,
        payload.columns,
        payload.values,
        session.username,
        session.password,
    )
    response: dict[str, Any] = {
        "success": result.success,
        "newRowIndex": payload.new_row_index,
    }
    if result.error is not None:
        response["error"] = _edit_error(result.error)
    return CommandResult("insertRowResult", response)


async def _delete_row(
    payload: DeleteRowPayload,
    session: SessionRecord,
    context: BrowsingContext,
    deps: RouterDeps,
) -> CommandResult:
    result = await deps.executor.delete_row(
        session.server_spec,
        context.namespace,
        context.table_name,
        payload.primary_key_column,
        payload.primary_key_value,
        session.username,
        session.password,
    )
    response: dict[str, Any] = {
        "success": result.success,
        "rowIndex": payload.row_index,
    }
    if result.error is not None:
        response["error"] = _edit_error(result.error)
    return CommandResult("deleteRowResult", response)


Handler = Callable[[Any, SessionRecord, BrowsingContext, RouterDeps], Awaitable[CommandResult]]

_HANDLERS: dict[str, Handler] = {
    "getNamespaces": _get_namespaces,
    "getTables": _get_tables,
    "selectTable": _select_table,
    "requestData": _absolute_page("requestData"),
    "refresh": _absolute_page("refresh"),
    "paginate": _paginate,
    "paginateNext": _page_step("paginateNext", "next"),
    "paginatePrev": _page_step("paginatePrev", "prev"),
    "saveCell": _save_cell,
    "insertRow": _insert_row,
    "deleteRow": _delete_row,
}


async def handle_command(
    command: str,
    payload: Any,
    session: SessionRecord | None,
    context: BrowsingContext,
    deps: RouterDeps,
) -> CommandResult:
    name = resolve_command(command)
    model: type[BaseModel] | None = COMMAND_PAYLOADS.get(name)
    if model is None:
        logger.warning("Unknown command: %s", command)
        return error_result(
            ErrorCode.UNKNOWN_COMMAND, "commandHandler", f"Unknown command: {command}"
        )

    if session is None:
        return error_result(ErrorCode.AUTH_EXPIRED, name, "Not connected")

    try:
        parsed = model.model_validate(payload if payload is not None else {})
    except ValidationError as exc:
        return error_result(ErrorCode.INVALID_INPUT, name, _validation_message(exc))

    if name in TABLE_COMMANDS and not context.has_table:
        return error_result(ErrorCode.INVALID_INPUT, name, "No table selected")

    try:
        return await _HANDLERS[name](parsed, session, context, deps)
    except Exception:
        logger.exception("Command %s failed", name)
        return error_result(ErrorCode.COMMAND_ERROR, name)
