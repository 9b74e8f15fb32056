"""Progress reporting for long exports.

The export loop calls ``on_rows`` every N rows, never per row, and
``on_complete`` once at the end. Reporters are context managers so a
console display is torn down on every exit path.
"""

from __future__ import annotations

import sys
import time
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

if TYPE_CHECKING:
    from sql_export.core.models import ExportStats


@runtime_checkable
class ProgressReporter(Protocol):
    def on_rows(self, rows_exported: int) -> None: ...

    def on_complete(self, stats: ExportStats) -> None: ...


class NullProgress:
    """Reporter that reports nothing."""

    def __enter__(self) -> NullProgress:
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def on_rows(self, rows_exported: int) -> None:
        return None

    def on_complete(self, stats: ExportStats) -> None:
        return None


class LogProgress:
    """Reporter that emits a structlog line per batch."""

    def __init__(self) -> None:
        self._started = time.monotonic()

    def __enter__(self) -> LogProgress:
        self._started = time.monotonic()
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def on_rows(self, rows_exported: int) -> None:
        elapsed = time.monotonic() - self._started
        rate = rows_exported / elapsed if elapsed > 0 else 0.0
        structlog.get_logger().info(
            "rows exported",
            rows=rows_exported,
            rows_per_second=f"{rate:.0f}",
        )

    def on_complete(self, stats: ExportStats) -> None:
        structlog.get_logger().info(
            "export complete",
            rows=stats.rows_exported,
            elapsed_seconds=f"{stats.elapsed_seconds:.2f}",
            rows_per_second=f"{stats.rows_per_second:.0f}",
        )


class ConsoleProgress:
    """Live rich status line on stderr for interactive terminals."""

    def __init__(self, console: Console | None = None) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]Exporting"),
            TextColumn("{task.fields[rows]:,} rows"),
            TimeElapsedColumn(),
            console=console or Console(file=sys.stderr),
            transient=True,
        )
        self._task = self._progress.add_task("export", total=None, rows=0)

    def __enter__(self) -> ConsoleProgress:
        self._progress.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self._progress.stop()

    def on_rows(self, rows_exported: int) -> None:
        self._progress.update(self._task, rows=rows_exported)

    def on_complete(self, stats: ExportStats) -> None:
        self._progress.update(self._task, rows=stats.rows_exported)


def make_progress(quiet: bool = False) -> NullProgress | LogProgress | ConsoleProgress:
    """Pick a reporter: none when quiet, live status on a TTY, logs otherwise."""
    if quiet:
        return NullProgress()
    if sys.stderr.isatty():
        return ConsoleProgress()
    return LogProgress()
