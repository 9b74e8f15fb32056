"""Standard exit codes for sql-export.

Exit codes follow Unix conventions; 130 is reserved for interruption.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes for sql-export."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    USAGE_ERROR = 2
    INPUT_ERROR = 3
    OUTPUT_ERROR = 4
    NETWORK_ERROR = 5
    TIMEOUT = 6
    CONFIG_ERROR = 7
    QUERY_ERROR = 8
    ROW_ERROR = 9
    INTERRUPTED = 130
