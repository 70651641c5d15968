"""Pydantic schemas for servers, tables and columns.

Wire names are camelCase; Python attributes stay snake_case.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_PATH_PREFIX = "/api/atelier/"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ServerSpec(CamelModel):
    """One remote Atelier endpoint. Immutable once a session holds it."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    scheme: Literal["http", "https"] = "http"
    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    path_prefix: str = DEFAULT_PATH_PREFIX

    @field_validator("path_prefix", mode="before")
    @classmethod
    def normalise_path_prefix(cls, v: str | None) -> str:
        prefix = v or DEFAULT_PATH_PREFIX
        if not prefix.startswith("/"):
            prefix = "/" + prefix
        if not prefix.endswith("/"):
            prefix = prefix + "/"
        return prefix

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}{self.path_prefix}"


class ColumnInfo(CamelModel):
    """A column as reported by INFORMATION_SCHEMA.COLUMNS.

    read_only and is_primary_key stay None (omitted on the wire) unless set.
    """

    name: str
    data_type: str
    nullable: bool
    max_length: int | None = None
    precision: int | None = None
    scale: int | None = None
    read_only: bool | None = None
    is_primary_key: bool | None = None


class TableSchema(CamelModel):
    """Column list for one table, in ordinal order. Replaced, never mutated."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    table_name: str
    namespace: str
    columns: tuple[ColumnInfo, ...] = ()

    def column_names(self) -> set[str]:
        return {c.name for c in self.columns}

    def get_column(self, name: str) -> ColumnInfo | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @property
    def primary_key(self) -> ColumnInfo | None:
        for column in self.columns:
            if column.is_primary_key:
                return column
        return None


class FilterCriterion(CamelModel):
    """Raw user filter text. '*' and '?' are wildcards."""

    column: str
    value: str
