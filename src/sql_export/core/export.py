"""Streaming export of a query result to a delimited text file.

Rows are pulled one at a time from a forward-only cursor, formatted,
encoded and written before the next row is read, so memory use does not
grow with the size of the result set.
"""

from __future__ import annotations

import contextlib
import time
from typing import TYPE_CHECKING, Any, TextIO

import sentry_sdk
import structlog

from sql_export.core.encoder import encode_field, encode_header, encode_row
from sql_export.core.exceptions import ConfigError, RowProcessingError, WriteError
from sql_export.core.models import ExportStats
from sql_export.core.progress import NullProgress
from sql_export.core.values import format_value

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from sql_export.core.client import PgClient
    from sql_export.core.cursor import CursorSource
    from sql_export.core.models import ColumnDescriptor, ExportConfiguration
    from sql_export.core.progress import ProgressReporter


def open_sink(path: Path, config: ExportConfiguration) -> TextIO:
    """Open the output file for truncating write.

    newline="" keeps the configured row terminator byte-exact.
    """
    try:
        return open(path, "w", encoding=config.encoding, newline="")  # noqa: SIM115
    except OSError as e:
        msg = f"Cannot open output file {path}: {e}"
        raise ConfigError(msg) from e


def _write(sink: TextIO, text: str) -> None:
    try:
        sink.write(text)
    except UnicodeEncodeError as e:
        msg = f"Cannot encode output as {e.encoding}: {e.reason} ({e.object[e.start:e.end]!r})"
        raise WriteError(msg) from e
    except OSError as e:
        raise WriteError(f"Failed writing output: {e}") from e


def encode_values(
    row: Sequence[Any],
    columns: Sequence[ColumnDescriptor],
    row_number: int,
    config: ExportConfiguration,
) -> str:
    """Format and encode one row into a line without its terminator."""
    if len(row) != len(columns):
        msg = f"Row {row_number} has {len(row)} values, expected {len(columns)}"
        raise RowProcessingError(msg)

    fields: list[str] = []
    for col, value in zip(columns, row, strict=True):
        try:
            text = format_value(value, config)
        except RowProcessingError as e:
            msg = f"Row {row_number}, column '{col.name}': {e.message}"
            raise RowProcessingError(msg) from e
        except (TypeError, ValueError) as e:
            msg = f"Row {row_number}, column '{col.name}': cannot format value: {e}"
            raise RowProcessingError(msg) from e
        fields.append(encode_field(text, config))
    return encode_row(fields, config)


def export_rows(
    cursor: CursorSource,
    sink: TextIO,
    config: ExportConfiguration,
    progress: ProgressReporter | None = None,
    stats: ExportStats | None = None,
) -> ExportStats:
    """Write the header and every cursor row to sink.

    Pass ``stats`` to observe the row count after an aborted export.
    """
    if progress is None:
        progress = NullProgress()
    if stats is None:
        stats = ExportStats()

    started = time.monotonic()
    columns = cursor.columns
    newline = config.newline
    every = config.progress_every

    try:
        _write(sink, encode_header(columns, config) + newline)
        while True:
            row = cursor.fetch_row()
            if row is None:
                break
            line = encode_values(row, columns, stats.rows_exported + 1, config)
            _write(sink, line + newline)
            stats.rows_exported += 1
            if stats.rows_exported % every == 0:
                progress.on_rows(stats.rows_exported)
    finally:
        stats.elapsed_seconds = time.monotonic() - started

    progress.on_complete(stats)
    return stats


def export_query(
    client: PgClient,
    sql: str,
    output_path: Path,
    config: ExportConfiguration,
    progress: ProgressReporter | None = None,
) -> ExportStats:
    """Run sql through client and stream the result into output_path.

    Takes ownership of client. On every exit path the cursor is cancelled
    (unless it finished), then the cursor, the connection and the output
    file are closed in that order.
    """
    log = structlog.get_logger()
    stats = ExportStats()

    with contextlib.ExitStack() as stack:
        sink = stack.enter_context(open_sink(output_path, config))
        stack.enter_context(client)
        cursor = client.open_cursor(sql)
        stack.callback(cursor.close)

        log.info(
            "export started",
            output=str(output_path),
            columns=len(cursor.columns),
            encoding=config.encoding,
        )
        with sentry_sdk.start_span(op="db.export", description=str(output_path)) as span:
            try:
                export_rows(cursor, sink, config, progress, stats=stats)
            except BaseException:
                log.warning(
                    "export aborted",
                    rows_exported=stats.rows_exported,
                    output=str(output_path),
                )
                cursor.cancel()
                raise
            finally:
                span.set_data("row_count", stats.rows_exported)

    log.debug(
        "export finished",
        rows=stats.rows_exported,
        elapsed_seconds=f"{stats.elapsed_seconds:.2f}",
    )
    return stats
