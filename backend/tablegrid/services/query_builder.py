"""Statement builder for paged reads and single-row writes.

IRIS SQL has no OFFSET. Pages past the first are read with a nested TOP
query and the %VID virtual row number of the inner result:

    SELECT TOP n cols FROM (SELECT TOP o+n cols FROM t WHERE .. ORDER BY ..)
    WHERE %VID > o

%VID numbers rows in the order the inner query produced them, so the inner
query always carries an ORDER BY. Without one, page boundaries would move
between calls.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from tablegrid.core.errors import InvalidInputError
from tablegrid.schemas.table import FilterCriterion, TableSchema
from tablegrid.services.clause_builder import build_where, stable_order_by
from tablegrid.services.identifier import (
    escape_table_name,
    quote_identifier,
    validate_identifier,
    validate_non_negative_int,
)

VIRTUAL_ROW_ID = "%VID"


@dataclass
class CompiledStatement:
    sql: str
    params: list[Any] = field(default_factory=list)


def _join(*parts: str) -> str:
    return " ".join(p for p in parts if p)


def _column_list(schema: TableSchema) -> str:
    if not schema.columns:
        return "*"
    return ", ".join(quote_identifier(c.name) for c in schema.columns)


def build_select_page(
    schema: TableSchema,
    offset: int,
    page_size: int,
    filters: Sequence[FilterCriterion] | None = None,
    sort_column: str | None = None,
    sort_direction: str | None = None,
) -> CompiledStatement:
    """Build the SELECT for rows [offset, offset + page_size)."""
    offset = validate_non_negative_int(offset, "offset")
    page_size = validate_non_negative_int(page_size, "page size")
    table = escape_table_name(schema.table_name)
    columns = _column_list(schema)

    where = build_where(filters, schema)
    order_by = stable_order_by(sort_column, sort_direction, schema)

    if offset == 0:
        sql = _join(
            f"SELECT TOP {page_size} {columns} FROM {table}", where.clause, order_by
        )
        return CompiledStatement(sql=sql, params=list(where.params))

    inner = _join(
        f"SELECT TOP {offset + page_size} {columns} FROM {table}",
        where.clause,
        order_by,
    )
    sql = (
        f"SELECT TOP {page_size} {columns} FROM ({inner}) "
        f"WHERE {VIRTUAL_ROW_ID} > {offset}"
    )
    return CompiledStatement(sql=sql, params=list(where.params))


def build_count(
    schema: TableSchema, filters: Sequence[FilterCriterion] | None = None
) -> CompiledStatement:
    """Filtered row count, using the same WHERE as the page query."""
    table = escape_table_name(schema.table_name)
    where = build_where(filters, schema)
    sql = _join(f"SELECT COUNT(*) AS total FROM {table}", where.clause)
    return CompiledStatement(sql=sql, params=list(where.params))


def build_insert(
    table_name: str, columns: Sequence[str], values: Sequence[Any]
) -> CompiledStatement:
    if not columns:
        raise InvalidInputError("Insert requires at least one column", "insert")
    if len(columns) != len(values):
        raise InvalidInputError(
            "Insert columns and values must have the same length", "insert"
        )
    table = escape_table_name(table_name)
    escaped = [validate_identifier(c, "column name") for c in columns]
    placeholders = ", ".join("?" for _ in escaped)
    sql = f"INSERT INTO {table} ({', '.join(escaped)}) VALUES ({placeholders})"
    return CompiledStatement(sql=sql, params=list(values))


def build_update(
    table_name: str,
    column: str,
    value: Any,
    primary_key_column: str,
    primary_key_value: Any,
) -> CompiledStatement:
    table = escape_table_name(table_name)
    target = validate_identifier(column, "column name")
    key = validate_identifier(primary_key_column, "primary key column")
    return CompiledStatement(
        sql=f"UPDATE {table} SET {target} = ? WHERE {key} = ?",
        params=[value, primary_key_value],
    )


def build_delete(
    table_name: str, primary_key_column: str, primary_key_value: Any
) -> CompiledStatement:
    table = escape_table_name(table_name)
    key = validate_identifier(primary_key_column, "primary key column")
    return CompiledStatement(
        sql=f"DELETE FROM {table} WHERE {key} = ?", params=[primary_key_value]
    )
