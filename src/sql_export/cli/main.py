"""sql-export main entry point."""

from __future__ import annotations

import signal
from pathlib import Path  # noqa: TC003
from typing import Annotated, Any

import sentry_sdk
import typer

from sql_export.__about__ import __version__
from sql_export.core.client import PgClient
from sql_export.core.config import build_export_config, load_config, resolve_config
from sql_export.core.exceptions import SqlExportError
from sql_export.core.exit_codes import ExitCode
from sql_export.core.export import export_query
from sql_export.core.logging import setup_logging
from sql_export.core.monitoring import setup_sentry
from sql_export.core.progress import make_progress
from sql_export.core.query_source import resolve_query_source

app = typer.Typer(
    help="sql-export - stream a PostgreSQL query result to a CSV file",
)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"sql-export {__version__}")
        raise typer.Exit()


@app.command(no_args_is_help=True)
def export(
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Output file (overwritten)"),
    ],
    file: Annotated[
        str | None,
        typer.Argument(help="SQL file to execute"),
    ] = None,
    execute: Annotated[
        str | None,
        typer.Option("--execute", "-e", help="Execute inline SQL query"),
    ] = None,
    dsn: Annotated[
        str | None,
        typer.Option("--dsn", help="Full connection string (URL or key=value)"),
    ] = None,
    database: Annotated[
        str | None,
        typer.Option("--database", "-d", help="Database name"),
    ] = None,
    server: Annotated[
        str | None,
        typer.Option("--server", "-S", help="Database server host"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Database server port"),
    ] = None,
    user: Annotated[
        str | None,
        typer.Option("--user", "-U", help="User name"),
    ] = None,
    password: Annotated[
        str | None,
        typer.Option("--password", "-W", help="Password"),
    ] = None,
    profile: Annotated[
        str | None,
        typer.Option("--profile", "-P", help="Named connection profile"),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config file"),
    ] = None,
    delimiter: Annotated[
        str | None,
        typer.Option("--delimiter", help="Column delimiter [default: ,]"),
    ] = None,
    newline: Annotated[
        str | None,
        typer.Option("--newline", help="Row terminator [default: \\r\\n]"),
    ] = None,
    quote: Annotated[
        str | None,
        typer.Option("--quote", help='Quote character [default: "]'),
    ] = None,
    escape: Annotated[
        str | None,
        typer.Option("--escape", help='Escape character for quotes [default: "]'),
    ] = None,
    encoding: Annotated[
        str | None,
        typer.Option("--encoding", help="Output text encoding [default: utf-8]"),
    ] = None,
    date_format: Annotated[
        str | None,
        typer.Option(
            "--date-format", help="Date format mask [default: yyyy-MM-dd HH:mm:ss]"
        ),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option(
            "--timeout",
            "-t",
            help="Statement timeout per fetch batch, in seconds [default: 0 = none]",
        ),
    ] = None,
    connect_timeout: Annotated[
        int | None,
        typer.Option("--connect-timeout", help="Connect timeout in seconds (0 = none)"),
    ] = None,
    progress_every: Annotated[
        int | None,
        typer.Option("--progress-every", help="Report progress every N rows"),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="No progress output"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable verbose logging"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Execute a SQL query and stream its result set to a delimited file.

    The query comes from FILE, inline (-e), or stdin.
    """
    setup_logging(verbose, quiet)
    setup_sentry()

    sql = resolve_query_source(inline=execute, file_path=file)

    app_config = load_config(config_file)
    export_config = build_export_config(
        app_config,
        delimiter=delimiter,
        newline=newline,
        quote=quote,
        escape=escape,
        encoding=encoding,
        date_format=date_format,
        progress_every=progress_every,
    )
    cli_overrides: dict[str, Any] = {
        "server": server,
        "port": port,
        "database": database,
        "user": user,
        "password": password,
        "timeout": timeout,
        "connect_timeout": connect_timeout,
    }
    resolved = resolve_config(app_config, profile_name=profile, dsn=dsn, **cli_overrides)
    output_path = output.expanduser().resolve()

    with (
        sentry_sdk.start_transaction(op="cli", name="export"),
        make_progress(quiet) as progress,
    ):
        try:
            stats = export_query(
                PgClient(resolved), sql, output_path, export_config, progress
            )
        except KeyboardInterrupt:
            typer.echo(f"Export interrupted; partial output in {output_path}", err=True)
            raise typer.Exit(ExitCode.INTERRUPTED) from None

    typer.echo(
        f"Exported {stats.rows_exported} rows in {stats.elapsed_seconds:.2f}s "
        f"to {output_path}"
    )


def _raise_interrupt(signum: int, frame: Any) -> None:
    raise KeyboardInterrupt


def run() -> None:
    """Entry point with global error handling."""
    signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        app()
    except SqlExportError as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e.message}", err=True)
        raise SystemExit(e.exit_code) from None
    except SystemExit:
        raise
    except KeyboardInterrupt:
        raise SystemExit(ExitCode.INTERRUPTED) from None
    except Exception as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e}", err=True)
        raise SystemExit(ExitCode.GENERAL_ERROR) from None
