"""Identifier validation and escaping for IRIS SQL.

Every table and column name that reaches a statement passes through here.
Names are checked against a strict grammar and then rendered as delimited
identifiers via sqlglot, so embedded quotes are doubled.
"""

import re

from sqlglot import exp

from tablegrid.core.errors import InvalidInputError

DEFAULT_SCHEMA = "SQLUser"

# IRIS allows % and $ in identifiers; '.' only ever separates schema from table
VALID_IDENTIFIER = re.compile(r"^[a-zA-Z_%][a-zA-Z0-9_%$.]*$")


def quote_identifier(name: str) -> str:
    return exp.to_identifier(name, quoted=True).sql()


def validate_identifier(identifier: object, context: str = "identifier") -> str:
    """Validate a single identifier and return it escaped.

    Raises:
        InvalidInputError: if the value is not a string or fails the grammar.
    """
    if not isinstance(identifier, str):
        raise InvalidInputError(f"Invalid {context}: expected a name", context)
    trimmed = identifier.strip()
    if not trimmed:
        raise InvalidInputError(f"Invalid {context}: name is empty", context)
    if not VALID_IDENTIFIER.match(trimmed):
        raise InvalidInputError(f"Invalid {context}: {trimmed!r}", context)
    return quote_identifier(trimmed)


def parse_qualified_table_name(table_name: str) -> tuple[str, str]:
    """Split "Schema.Table" on the first dot. Bare names use SQLUser."""
    trimmed = table_name.strip()
    if "." in trimmed:
        schema, table = trimmed.split(".", 1)
        return schema, table
    return DEFAULT_SCHEMA, trimmed


def escape_table_name(table_name: object) -> str:
    """Validate and escape a possibly qualified table name.

    Each half is escaped on its own and joined with a literal dot, so
    "Sample.Person" becomes "Sample"."Person".
    """
    if not isinstance(table_name, str) or not table_name.strip():
        raise InvalidInputError("Invalid table name: name is empty", "table name")
    schema, table = parse_qualified_table_name(table_name)
    escaped_schema = validate_identifier(schema, "schema name")
    escaped_table = validate_identifier(table, "table name")
    return f"{escaped_schema}.{escaped_table}"


def validate_non_negative_int(value: object, context: str) -> int:
    # bool is an int subclass; True must not pass as 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"Invalid {context}: expected a whole number", context)
    if value < 0:
        raise InvalidInputError(f"Invalid {context}: must not be negative", context)
    return value
