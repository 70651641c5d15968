"""WHERE and ORDER BY construction from grid filters and sort state.

Columns are checked against the table schema before use. Unknown columns
are dropped rather than reported, so probing filter names reveals nothing
about the schema. Filter values are always bound as parameters.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from tablegrid.schemas.table import FilterCriterion, TableSchema
from tablegrid.services.identifier import quote_identifier

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"


@dataclass
class WhereClause:
    clause: str = ""
    params: list[str] = field(default_factory=list)


def has_wildcards(value: str) -> bool:
    return "*" in value or "?" in value


def translate_wildcards(value: str) -> str:
    """Turn user wildcards into a LIKE pattern.

    Literal % and _ are escaped first so only * and ? act as wildcards.
    """
    escaped = (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return escaped.replace("*", "%").replace("?", "_")


def build_where(
    filters: Iterable[FilterCriterion] | None, schema: TableSchema
) -> WhereClause:
    known = schema.column_names()
    conditions: list[str] = []
    params: list[str] = []

    for criterion in filters or ():
        if criterion.column not in known:
            logger.warning(
                "Dropping filter on unknown column %r for table %s",
                criterion.column,
                schema.table_name,
            )
            continue
        value = criterion.value.strip()
        if not value:
            continue

        column = quote_identifier(criterion.column)
        if has_wildcards(value):
            conditions.append(f"{column} LIKE ? ESCAPE '{LIKE_ESCAPE}'")
            params.append(translate_wildcards(value))
        else:
            conditions.append(f"{column} LIKE ?")
            params.append(value)

    if not conditions:
        return WhereClause()
    return WhereClause(clause="WHERE " + " AND ".join(conditions), params=params)


def build_order_by(
    sort_column: str | None, direction: str | None, schema: TableSchema
) -> str:
    if not sort_column or not direction:
        return ""
    normalised = direction.strip().lower()
    if normalised in ("", "none"):
        return ""
    if sort_column not in schema.column_names():
        logger.warning(
            "Ignoring sort on unknown column %r for table %s",
            sort_column,
            schema.table_name,
        )
        return ""
    keyword = "DESC" if normalised == "desc" else "ASC"
    return f"ORDER BY {quote_identifier(sort_column)} {keyword}"


def default_order_by(schema: TableSchema) -> str:
    """Stable ordering for tables read without an explicit sort."""
    key = schema.primary_key or (schema.columns[0] if schema.columns else None)
    if key is None:
        return ""
    return f"ORDER BY {quote_identifier(key.name)} ASC"


def stable_order_by(
    sort_column: str | None, direction: str | None, schema: TableSchema
) -> str:
    """Requested sort plus the key column as a tie-breaker.

    %VID paging numbers rows as they come out of the inner query, so the
    ordering must be total or rows can repeat or vanish between pages.
    """
    order_by = build_order_by(sort_column, direction, schema)
    if not order_by:
        return default_order_by(schema)
    key = schema.primary_key or schema.columns[0]
    if key.name == sort_column:
        return order_by
    return f"{order_by}, {quote_identifier(key.name)} ASC"
