"""Namespace, table and column metadata from the remote catalog.

Column flags are inferred from INFORMATION_SCHEMA.COLUMNS:
- IS_IDENTITY or IS_GENERATED   -> read_only
- IS_IDENTITY and not generated -> is_primary_key (the row key for edits)
"""

import logging
from typing import Any

from tablegrid.core.atelier import AtelierClient, QueryResult
from tablegrid.core.errors import InvalidInputError
from tablegrid.schemas.table import ColumnInfo, ServerSpec, TableSchema
from tablegrid.services.identifier import escape_table_name, parse_qualified_table_name

logger = logging.getLogger(__name__)

TABLES_QUERY = (
    "SELECT TABLE_SCHEMA, TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
    "WHERE TABLE_TYPE = 'BASE TABLE' ORDER BY TABLE_SCHEMA, TABLE_NAME"
)

COLUMNS_QUERY = (
    "SELECT COLUMN_NAME, DATA_TYPE, IS_NULLABLE, CHARACTER_MAXIMUM_LENGTH, "
    "NUMERIC_PRECISION, NUMERIC_SCALE, IS_IDENTITY, IS_GENERATED "
    "FROM INFORMATION_SCHEMA.COLUMNS "
    "WHERE TABLE_SCHEMA = ? AND TABLE_NAME = ? ORDER BY ORDINAL_POSITION"
)


def _catalog_flag(value: Any) -> bool:
    """Catalog booleans arrive as 'YES'/'NO', 1/0 or real booleans."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().upper() in ("YES", "TRUE", "1")
    return False


def infer_column_flags(identity: Any, generated: Any) -> tuple[bool | None, bool | None]:
    """Return (read_only, is_primary_key). False flags come back as None."""
    is_identity = _catalog_flag(identity)
    is_generated = _catalog_flag(generated)
    read_only = is_identity or is_generated
    is_primary_key = is_identity and not is_generated
    return (read_only or None, is_primary_key or None)


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_column_row(row: Any) -> ColumnInfo | None:
    """Build a ColumnInfo from one catalog row, or None if it is malformed."""
    if not isinstance(row, dict):
        logger.debug("Skipping catalog row: not an object")
        return None
    name = row.get("COLUMN_NAME")
    if not isinstance(name, str) or not name:
        logger.debug("Skipping catalog row with invalid COLUMN_NAME")
        return None
    data_type = row.get("DATA_TYPE")
    if not isinstance(data_type, str):
        logger.debug("Skipping column %s: invalid DATA_TYPE", name)
        return None

    read_only, is_primary_key = infer_column_flags(
        row.get("IS_IDENTITY"), row.get("IS_GENERATED")
    )
    return ColumnInfo(
        name=name,
        data_type=data_type,
        nullable=row.get("IS_NULLABLE") == "YES",
        max_length=_optional_int(row.get("CHARACTER_MAXIMUM_LENGTH")),
        precision=_optional_int(row.get("NUMERIC_PRECISION")),
        scale=_optional_int(row.get("NUMERIC_SCALE")),
        read_only=read_only,
        is_primary_key=is_primary_key,
    )


class TableMetadataService:
    """Reads namespaces, tables and column schemas through an AtelierClient."""

    def __init__(self, client: AtelierClient):
        self._client = client

    async def get_namespaces(
        self, spec: ServerSpec, username: str, password: str
    ) -> QueryResult:
        result = await self._client.get_server_descriptor(spec, username, password)
        if not result.success:
            return result
        namespaces = (result.data or {}).get("namespaces") or []
        names = [ns for ns in namespaces if isinstance(ns, str)]
        logger.debug("Retrieved %d namespaces", len(names))
        return QueryResult(success=True, data=names)

    async def get_tables(
        self, spec: ServerSpec, namespace: str, username: str, password: str
    ) -> QueryResult:
        result = await self._client.execute_query(
            spec, namespace, username, password, TABLES_QUERY, operation="getTables"
        )
        if not result.success:
            return result

        tables = [
            f"{row['TABLE_SCHEMA']}.{row['TABLE_NAME']}"
            for row in result.rows
            if isinstance(row, dict)
            and isinstance(row.get("TABLE_SCHEMA"), str)
            and isinstance(row.get("TABLE_NAME"), str)
        ]
        logger.debug("Retrieved %d tables in %s", len(tables), namespace)
        return QueryResult(success=True, data=tables)

    async def get_table_schema(
        self,
        spec: ServerSpec,
        namespace: str,
        table_name: str,
        username: str,
        password: str,
    ) -> QueryResult:
        """Load the column list for table_name; result.data is a TableSchema."""
        try:
            escape_table_name(table_name)
        except InvalidInputError as exc:
            return QueryResult.failure(exc.to_user_error("getTableSchema"))

        schema_name, base_name = parse_qualified_table_name(table_name)
        result = await self._client.execute_query(
            spec,
            namespace,
            username,
            password,
            COLUMNS_QUERY,
            [schema_name, base_name],
            operation="getTableSchema",
        )
        if not result.success:
            return result

        columns = [c for c in (parse_column_row(row) for row in result.rows) if c]
        schema = TableSchema(
            table_name=table_name.strip(), namespace=namespace, columns=tuple(columns)
        )
        logger.debug("Loaded %d columns for %s", len(columns), schema.table_name)
        return QueryResult(success=True, data=schema)
