"""Field and row encoding for delimited output (RFC 4180 quoting).

A field is quoted only when it contains the delimiter, a carriage return,
a line feed or the quote character. Plain fields are written verbatim.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sql_export.core.models import ColumnDescriptor, ExportConfiguration


def needs_quoting(text: str, config: ExportConfiguration) -> bool:
    return (
        config.delimiter in text
        or config.quote in text
        or "\r" in text
        or "\n" in text
    )


def encode_field(text: str, config: ExportConfiguration) -> str:
    """Quote and escape a formatted field when its content requires it."""
    if not needs_quoting(text, config):
        return text
    escaped = text.replace(config.quote, config.escape + config.quote)
    return f"{config.quote}{escaped}{config.quote}"


def encode_row(fields: Iterable[str], config: ExportConfiguration) -> str:
    """Join already-encoded fields. The row terminator is not appended."""
    return config.delimiter.join(fields)


def encode_header(
    columns: Iterable[ColumnDescriptor], config: ExportConfiguration
) -> str:
    return encode_row((encode_field(col.name, config) for col in columns), config)
