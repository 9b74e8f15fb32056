"""Export models for sql-export.

Column metadata, export configuration and the running export counters.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sql_export.core.datefmt import compile_date_format

DEFAULT_DELIMITER = ","
DEFAULT_NEWLINE = "\r\n"
DEFAULT_QUOTE = '"'
DEFAULT_ESCAPE = '"'
DEFAULT_DATE_FORMAT = "yyyy-MM-dd HH:mm:ss"
DEFAULT_ENCODING = "utf-8"
DEFAULT_PROGRESS_EVERY = 10_000


class ColumnDescriptor(BaseModel):
    """Metadata for a single result column."""

    model_config = ConfigDict(frozen=True)

    name: str
    declared_type: str = "unknown"
    type_oid: int = 0

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class ExportConfiguration(BaseModel):
    """Immutable settings controlling how rows are rendered to text."""

    model_config = ConfigDict(frozen=True)

    delimiter: str = DEFAULT_DELIMITER
    newline: str = DEFAULT_NEWLINE
    quote: str = DEFAULT_QUOTE
    escape: str = DEFAULT_ESCAPE
    date_format: str = DEFAULT_DATE_FORMAT
    encoding: str = DEFAULT_ENCODING
    progress_every: int = Field(default=DEFAULT_PROGRESS_EVERY, gt=0)

    @field_validator("delimiter", "newline")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            msg = "must not be empty"
            raise ValueError(msg)
        return v

    @field_validator("quote", "escape")
    @classmethod
    def validate_single_char(cls, v: str) -> str:
        if len(v) != 1:
            msg = f"must be exactly one character, got {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        try:
            return codecs.lookup(v).name
        except LookupError:
            msg = f"Unknown encoding: {v!r}"
            raise ValueError(msg) from None

    @field_validator("date_format")
    @classmethod
    def validate_date_format(cls, v: str) -> str:
        compile_date_format(v)
        return v


@dataclass
class ExportStats:
    rows_exported: int = 0
    elapsed_seconds: float = 0.0

    @property
    def rows_per_second(self) -> float:
        if self.rows_exported == 0 or self.elapsed_seconds <= 0:
            return 0.0
        return self.rows_exported / self.elapsed_seconds
