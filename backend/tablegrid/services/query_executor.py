"""Query executor: validated statements in, QueryResult out.

Each call validates identifiers and integers first (no network call on
failure), builds the statement, sends it once and classifies the outcome.
There are no retries at this layer.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from tablegrid.core.atelier import AtelierClient, QueryResult
from tablegrid.core.errors import InvalidInputError
from tablegrid.core.metrics import query_result_rows
from tablegrid.schemas.table import FilterCriterion, ServerSpec, TableSchema
from tablegrid.services.query_builder import (
    CompiledStatement,
    build_count,
    build_delete,
    build_insert,
    build_select_page,
    build_update,
)

logger = logging.getLogger(__name__)

__all__ = ["QueryExecutor", "QueryResult"]


def _read_total(rows: list[dict]) -> int:
    if not rows or not isinstance(rows[0], dict):
        return 0
    first = rows[0]
    value = first.get("total", first.get("TOTAL"))
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class QueryExecutor:
    """Runs grid reads and row edits against one Atelier client."""

    def __init__(self, client: AtelierClient):
        self._client = client

    async def _run(
        self,
        spec: ServerSpec,
        namespace: str,
        username: str,
        password: str,
        statement: CompiledStatement,
        operation: str,
    ) -> QueryResult:
        return await self._client.execute_query(
            spec,
            namespace,
            username,
            password,
            statement.sql,
            statement.params,
            operation=operation,
        )

    async def _count_rows(
        self,
        spec: ServerSpec,
        namespace: str,
        username: str,
        password: str,
        statement: CompiledStatement,
    ) -> int:
        """Filtered row count. Any failure degrades to 0."""
        try:
            result = await self._run(
                spec, namespace, username, password, statement, "countRows"
            )
        except Exception:
            logger.warning("Row count failed, reporting 0", exc_info=True)
            return 0
        if not result.success:
            logger.warning(
                "Row count failed (%s), reporting 0",
                result.error.code.value if result.error else "unknown",
            )
            return 0
        return _read_total(result.rows)

    async def get_table_data(
        self,
        spec: ServerSpec,
        namespace: str,
        schema: TableSchema,
        page_size: int,
        offset: int,
        username: str,
        password: str,
        filters: Sequence[FilterCriterion] | None = None,
        sort_column: str | None = None,
        sort_direction: str | None = None,
    ) -> QueryResult:
        """Read one page plus the filtered total.

        The page and count requests run concurrently. A failed count never
        fails or cancels the page read.
        """
        try:
            page = build_select_page(
                schema, offset, page_size, filters, sort_column, sort_direction
            )
            count = build_count(schema, filters)
        except InvalidInputError as exc:
            logger.info("Rejected table read: %s", exc.message)
            return QueryResult.failure(exc.to_user_error("getTableData"))

        logger.debug(
            "Fetching %s (page size %d, offset %d, %d filters, sort %s)",
            schema.table_name,
            page_size,
            offset,
            len(filters or ()),
            sort_column or "none",
        )
        data, total = await asyncio.gather(
            self._run(spec, namespace, username, password, page, "getTableData"),
            self._count_rows(spec, namespace, username, password, count),
        )
        if not data.success:
            return data

        query_result_rows.observe(len(data.rows))
        return QueryResult(success=True, rows=data.rows, total_rows=total)

    async def update_cell(
        self,
        spec: ServerSpec,
        namespace: str,
        table_name: str,
        column_name: str,
        value: Any,
        primary_key_column: str,
        primary_key_value: Any,
        username: str,
        password: str,
    ) -> QueryResult:
        try:
            statement = build_update(
                table_name, column_name, value, primary_key_column, primary_key_value
            )
        except InvalidInputError as exc:
            return QueryResult.failure(exc.to_user_error("updateCell"))

        result = await self._run(
            spec, namespace, username, password, statement, "updateCell"
        )
        if result.success:
            # Zero matched rows is still success; the server does not tell us
            logger.debug("Updated %s.%s", table_name, column_name)
            return QueryResult(success=True)
        return result

    async def insert_row(
        self,
        spec: ServerSpec,
        namespace: str,
        table_name: str,
        columns: Sequence[str],
        values: Sequence[Any],
        username: str,
        password: str,
    ) -> QueryResult:
        try:
            statement = build_insert(table_name, columns, values)
        except InvalidInputError as exc:
            return QueryResult.failure(exc.to_user_error("insertRow"))

        result = await self._run(
            spec, namespace, username, password, statement, "insertRow"
        )
        if result.success:
            logger.debug("Inserted row into %s (%d columns)", table_name, len(columns))
            return QueryResult(success=True)
        return result

    async def delete_row(
        self,
        spec: ServerSpec,
        namespace: str,
        table_name: str,
        primary_key_column: str,
        primary_key_value: Any,
        username: str,
        password: str,
    ) -> QueryResult:
        try:
            statement = build_delete(table_name, primary_key_column, primary_key_value)
        except InvalidInputError as exc:
            return QueryResult.failure(exc.to_user_error("deleteRow"))

        result = await self._run(
            spec, namespace, username, password, statement, "deleteRow"
        )
        if result.success:
            logger.debug("Deleted row from %s", table_name)
            return QueryResult(success=True)
        return result
