"""Query source resolution for sql-export.

Resolves the SQL query text from one of three sources:
1. Inline (-e flag)  - highest priority
2. File path         - middle priority
3. stdin             - lowest priority
"""

from __future__ import annotations

import sys
from pathlib import Path

from sql_export.core.exceptions import InputError


def resolve_query_source(
    inline: str | None,
    file_path: str | None,
) -> str:
    """Resolve SQL query from inline, file, or stdin.

    Precedence: inline > file > stdin.
    Raises InputError when no source is available or the query is blank.
    """
    if inline is not None:
        sql = inline
    elif file_path is not None:
        p = Path(file_path)
        if not p.exists():
            msg = (
                f"Query file not found: {file_path}\n"
                "Use -e for inline queries or pipe query via stdin."
            )
            raise InputError(msg)
        sql = p.read_text()
    elif not sys.stdin.isatty():
        sql = sys.stdin.read()
    else:
        msg = "No query provided. Use -e, file path, or pipe to stdin."
        raise InputError(msg)

    if not sql.strip():
        msg = "Query text is empty."
        raise InputError(msg)
    return sql
