"""PostgreSQL client for sql-export.

Wraps psycopg v3 synchronous connections: connects, applies the statement
timeout, declares a server-side cursor for the query and maps driver
exceptions to the SqlExportError hierarchy.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import psycopg
import psycopg.errors
import sentry_sdk
import structlog

from sql_export.core.cursor import PgCursorSource
from sql_export.core.exceptions import (
    NetworkError,
    QueryExecutionError,
    TimeoutError,
)
from sql_export.core.models import ColumnDescriptor

if TYPE_CHECKING:
    from sql_export.core.config import ResolvedConfig

# Mapping from psycopg type OIDs to human-readable names.
# Covers the most common PostgreSQL types; unknown OIDs fall back to "unknown".
_TYPE_NAMES: dict[int, str] = {
    16: "bool",
    17: "bytea",
    20: "int8",
    21: "int2",
    23: "int4",
    25: "text",
    26: "oid",
    114: "json",
    142: "xml",
    700: "float4",
    701: "float8",
    790: "money",
    1042: "bpchar",
    1043: "varchar",
    1082: "date",
    1083: "time",
    1114: "timestamp",
    1184: "timestamptz",
    1186: "interval",
    1266: "timetz",
    1700: "numeric",
    2950: "uuid",
    3802: "jsonb",
}

_CURSOR_NAME = "sql_export_cursor"


def describe_columns(description: Any) -> list[ColumnDescriptor]:
    """Build column descriptors from a psycopg cursor description."""
    return [
        ColumnDescriptor(
            name=desc.name,
            type_oid=desc.type_code,
            declared_type=_TYPE_NAMES.get(desc.type_code, "unknown"),
        )
        for desc in description or ()
    ]


class PgClient:
    """Synchronous PostgreSQL client using psycopg v3."""

    def __init__(self, config: ResolvedConfig, itersize: int = 2000) -> None:
        self.config = config
        self.itersize = itersize
        self._connection: psycopg.Connection[Any] | None = None

    def __enter__(self) -> PgClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _target(self) -> str:
        if self.config.dbname:
            return f"{self.config.host}:{self.config.port} database '{self.config.dbname}'"
        return f"{self.config.host}:{self.config.port}"

    def _connect(self) -> psycopg.Connection[Any]:
        if self._connection is not None and not self._connection.closed:
            return self._connection

        try:
            # server-side cursors need a transaction, so no autocommit
            self._connection = psycopg.connect(
                host=self.config.host,
                port=self.config.port,
                dbname=self.config.dbname,
                user=self.config.user,
                password=self.config.password,
                sslmode=self.config.sslmode,
                connect_timeout=self.config.connect_timeout,
                application_name=self.config.application_name,
                autocommit=False,
            )
        except psycopg.OperationalError as e:
            msg = f"Connection failed to {self._target()}: {e}"
            raise NetworkError(msg) from e

        return self._connection

    def open_cursor(self, sql: str) -> PgCursorSource:
        """Execute SQL and return a streaming cursor over its result set."""
        log = structlog.get_logger()
        conn = self._connect()
        timeout_ms = int(self.config.default_timeout * 1000)

        sql_normalized = " ".join(sql.split())
        span_description = sql_normalized[:100]
        log.debug("executing query", sql=sql_normalized, timeout_ms=timeout_ms)
        with sentry_sdk.start_span(op="db.query", description=span_description) as span:
            start_time = time.monotonic()
            cur = conn.cursor(name=_CURSOR_NAME)
            cur.itersize = self.itersize
            try:
                conn.execute(f"SET statement_timeout = {timeout_ms}")
                cur.execute(sql)
            except psycopg.errors.QueryCanceled as e:
                span.set_status("deadline_exceeded")
                log.error("query timeout", sql=sql_normalized)
                msg = f"Query timed out after {self.config.default_timeout}s: {e}"
                raise TimeoutError(msg) from e
            except psycopg.OperationalError as e:
                span.set_status("unavailable")
                log.error("database error", sql=sql_normalized, error=str(e))
                raise NetworkError(f"Database error: {e}") from e
            except psycopg.Error as e:
                span.set_status("invalid_argument")
                log.error("query rejected", sql=sql_normalized, error=str(e))
                raise QueryExecutionError(f"SQL error: {e}") from e

            columns = describe_columns(cur.description)
            duration_ms = (time.monotonic() - start_time) * 1000
            span.set_data("column_count", len(columns))
            span.set_data("duration_ms", duration_ms)
            log.debug(
                "query opened",
                duration_ms=f"{duration_ms:.1f}",
                column_count=len(columns),
            )

        if not columns:
            msg = "Query returned no result set"
            raise QueryExecutionError(msg)

        return PgCursorSource(conn, cur, columns)

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
