"""Forward-only cursor sources feeding the export loop."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import psycopg
import psycopg.errors
import structlog

from sql_export.core.exceptions import (
    NetworkError,
    QueryExecutionError,
    RowProcessingError,
    TimeoutError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from sql_export.core.models import ColumnDescriptor

Row = tuple[Any, ...]


@runtime_checkable
class CursorSource(Protocol):
    """A single-pass source of result rows.

    ``columns`` is available before the first row is read. ``fetch_row``
    returns None once the result set is exhausted.
    """

    @property
    def columns(self) -> list[ColumnDescriptor]: ...

    def fetch_row(self) -> Row | None: ...

    def cancel(self) -> None: ...

    def close(self) -> None: ...


class IterableCursorSource:
    """Cursor source over any iterable of row tuples."""

    def __init__(
        self, columns: list[ColumnDescriptor], rows: Iterable[Row]
    ) -> None:
        self._columns = list(columns)
        self._rows: Iterator[Row] = iter(rows)
        self.cancelled = False
        self.closed = False

    @property
    def columns(self) -> list[ColumnDescriptor]:
        return self._columns

    def fetch_row(self) -> Row | None:
        if self.closed:
            return None
        return next(self._rows, None)

    def cancel(self) -> None:
        self.cancelled = True

    def close(self) -> None:
        self.closed = True


class PgCursorSource:
    """Server-side (named) psycopg cursor streamed in ``itersize`` batches."""

    def __init__(
        self,
        connection: psycopg.Connection[Any],
        cursor: psycopg.ServerCursor[Any],
        columns: list[ColumnDescriptor],
    ) -> None:
        self._connection = connection
        self._cursor = cursor
        self._columns = columns
        self._rows: Iterator[Row] = iter(cursor)
        self._closed = False

    @property
    def columns(self) -> list[ColumnDescriptor]:
        return self._columns

    def fetch_row(self) -> Row | None:
        try:
            return next(self._rows, None)
        except psycopg.errors.QueryCanceled as e:
            if "statement timeout" in str(e):
                raise TimeoutError(f"Query timed out: {e}") from e
            raise QueryExecutionError(f"Query cancelled: {e}") from e
        except psycopg.OperationalError as e:
            raise NetworkError(f"Database error while fetching: {e}") from e
        except psycopg.DataError as e:
            # no sqlstate: raised client-side while loading a value
            if e.sqlstate is None:
                raise RowProcessingError(f"Cannot load value: {e}") from e
            raise QueryExecutionError(f"SQL error: {e}") from e
        except psycopg.Error as e:
            raise QueryExecutionError(f"SQL error: {e}") from e

    def cancel(self) -> None:
        """Ask the server to stop the running query.

        A no-op once the cursor or its connection is closed; a failed
        cancel request is logged, never raised.
        """
        if self._closed or self._connection.closed:
            return
        log = structlog.get_logger()
        try:
            self._connection.cancel_safe()
        except psycopg.Error as e:
            log.debug("cancel request failed", error=str(e))
        else:
            log.debug("cancel request sent")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._cursor.close()
        except psycopg.Error as e:
            # the transaction may already be aborted by a cancel
            structlog.get_logger().debug("cursor close failed", error=str(e))
