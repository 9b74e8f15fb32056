"""Logging configuration using structlog.

Logs go to stderr to keep stdout clean for the export summary.
"""

import logging
import sys
from typing import Any

import structlog

_LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class _LazyStderrFactory:
    """Resolve sys.stderr at logger creation time, not at configure() time.

    Under CliRunner the stderr handle captured at configure() time goes
    stale between invocations, so each logger looks up the current one.
    """

    def __call__(self, *args: Any, **kwargs: Any) -> structlog.PrintLogger:
        return structlog.PrintLogger(file=sys.stderr)


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure structlog for sql-export.

    Args:
        verbose: If True, set log level to DEBUG.
        quiet: If True (and not verbose), only warnings and above are shown.
    """
    if verbose:
        log_level = "debug"
    elif quiet:
        log_level = "warning"
    else:
        log_level = "info"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LOG_LEVELS[log_level]),
        context_class=dict,
        logger_factory=_LazyStderrFactory(),
        cache_logger_on_first_use=False,
    )

