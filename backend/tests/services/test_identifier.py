"""Identifier grammar and escaping tests."""

import pytest

from tablegrid.core.errors import ErrorCode, InvalidInputError
from tablegrid.services.identifier import (
    DEFAULT_SCHEMA,
    escape_table_name,
    parse_qualified_table_name,
    quote_identifier,
    validate_identifier,
    validate_non_negative_int,
)


class TestValidateIdentifier:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Name", '"Name"'),
            ("_private", '"_private"'),
            ("%ID", '"%ID"'),
            ("Total$Amount", '"Total$Amount"'),
            ("  Padded  ", '"Padded"'),
        ],
    )
    def test_valid_names_are_quoted(self, name, expected):
        assert validate_identifier(name, "column name") == expected

    @pytest.mark.parametrize(
        "bad",
        [
            "",
            "   ",
            "1Name",
            "Name;DROP TABLE x",
            "O'Brien",
            'Na"me',
            "Name--",
            "two words",
            "Name)",
        ],
    )
    def test_invalid_names_are_rejected(self, bad):
        with pytest.raises(InvalidInputError):
            validate_identifier(bad, "column name")

    @pytest.mark.parametrize("bad", [None, 42, ["Name"], {"name": "x"}])
    def test_non_strings_are_rejected(self, bad):
        with pytest.raises(InvalidInputError):
            validate_identifier(bad, "column name")

    def test_rejection_converts_to_invalid_input_error(self):
        with pytest.raises(InvalidInputError) as exc_info:
            validate_identifier("x;y", "column name")
        error = exc_info.value.to_user_error("updateCell")
        assert error.code is ErrorCode.INVALID_INPUT
        assert error.context == "updateCell"
        assert error.recoverable is True


class TestQuoteIdentifier:
    def test_embedded_quotes_are_doubled(self):
        assert quote_identifier('a"b') == '"a""b"'

    def test_plain_name(self):
        assert quote_identifier("Person") == '"Person"'


class TestQualifiedNames:
    def test_split_on_first_dot(self):
        assert parse_qualified_table_name("Sample.Person") == ("Sample", "Person")
        assert parse_qualified_table_name("A.B.C") == ("A", "B.C")

    def test_unqualified_uses_default_schema(self):
        assert parse_qualified_table_name("Person") == (DEFAULT_SCHEMA, "Person")
        assert DEFAULT_SCHEMA == "SQLUser"

    def test_escape_qualified_name(self):
        assert escape_table_name("Sample.Person") == '"Sample"."Person"'

    def test_escape_unqualified_name(self):
        assert escape_table_name("Person") == '"SQLUser"."Person"'

    def test_each_half_validated_independently(self):
        with pytest.raises(InvalidInputError):
            escape_table_name("Sample.Per son")
        with pytest.raises(InvalidInputError):
            escape_table_name("Sam;ple.Person")

    def test_dot_cannot_smuggle_quotes_across_schema_boundary(self):
        with pytest.raises(InvalidInputError):
            escape_table_name('Sample"."Person')

    @pytest.mark.parametrize("bad", ["", "  ", None])
    def test_empty_table_name_rejected(self, bad):
        with pytest.raises(InvalidInputError):
            escape_table_name(bad)


class TestNonNegativeInt:
    @pytest.mark.parametrize("value", [0, 1, 500])
    def test_accepts_whole_numbers(self, value):
        assert validate_non_negative_int(value, "offset") == value

    @pytest.mark.parametrize("value", [-1, 1.5, 2.0, "10", None, True, False])
    def test_rejects_everything_else(self, value):
        with pytest.raises(InvalidInputError):
            validate_non_negative_int(value, "offset")
