"""Exception hierarchy for sql-export.

All exceptions carry an exit_code for CLI return value mapping.
"""

from sql_export.core.exit_codes import ExitCode


class SqlExportError(Exception):
    """Base exception for all sql-export errors."""

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NetworkError(SqlExportError):
    """Connection failures, unreachable host, authentication rejected."""

    exit_code: int = ExitCode.NETWORK_ERROR


class TimeoutError(NetworkError):
    """Statement timeout, connection timeout."""

    exit_code: int = ExitCode.TIMEOUT


class InputError(SqlExportError):
    """Query file not found, empty query."""

    exit_code: int = ExitCode.INPUT_ERROR


class ConfigError(SqlExportError):
    """Malformed config, missing database, unwritable output path."""

    exit_code: int = ExitCode.CONFIG_ERROR


class QueryExecutionError(SqlExportError):
    """Query text rejected by the server."""

    exit_code: int = ExitCode.QUERY_ERROR


class RowProcessingError(SqlExportError):
    """A fetched value could not be loaded or formatted."""

    exit_code: int = ExitCode.ROW_ERROR


class WriteError(SqlExportError):
    """Writing to the output file failed."""

    exit_code: int = ExitCode.OUTPUT_ERROR
