"""Value formatting: one fetched value to its canonical text form.

Every value is first classified into a closed set of kinds; formatting is
an exhaustive match over that set. Output is pre-escaping text; quoting is
the encoder's job.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING, Any, assert_never

from sql_export.core.datefmt import compile_date_format
from sql_export.core.exceptions import RowProcessingError

if TYPE_CHECKING:
    from sql_export.core.models import ExportConfiguration

# date-only and time-only values are placed on this calendar day
_EPOCH_DATE = date(1, 1, 1)


class ValueKind(StrEnum):
    NULL = "null"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    STRING = "string"
    NUMERIC = "numeric"
    BINARY = "binary"
    OTHER = "other"


def classify(value: Any) -> ValueKind:
    """Map a driver-delivered value to its kind.

    Order matters: bool is an int subclass, datetime is a date subclass.
    """
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, datetime):
        return ValueKind.DATETIME
    if isinstance(value, date):
        return ValueKind.DATE
    if isinstance(value, time):
        return ValueKind.TIME
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (int, float, Decimal)):
        return ValueKind.NUMERIC
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ValueKind.BINARY
    return ValueKind.OTHER


def _to_datetime(value: date | time) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.combine(_EPOCH_DATE, value)


def format_temporal(value: date | time, date_format: str) -> str:
    """Render a temporal value through the date mask, on its own clock."""
    render = compile_date_format(date_format)
    try:
        return render(_to_datetime(value))
    except (AttributeError, TypeError, ValueError, OverflowError) as e:
        msg = f"Cannot render {type(value).__name__} value with {date_format!r}: {e}"
        raise RowProcessingError(msg) from e


def format_number(value: int | float | Decimal) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return repr(value)
    if isinstance(value, Decimal):
        # fixed-point, never exponent notation
        return format(value, "f")
    return str(value)


def format_value(value: Any, config: ExportConfiguration) -> str:
    """Convert one fetched value into its text representation."""
    kind = classify(value)
    match kind:
        case ValueKind.NULL:
            return ""
        case ValueKind.BOOLEAN:
            return "1" if value else "0"
        case ValueKind.DATETIME | ValueKind.DATE | ValueKind.TIME:
            return format_temporal(value, config.date_format)
        case ValueKind.STRING:
            return value
        case ValueKind.NUMERIC:
            return format_number(value)
        case ValueKind.BINARY:
            return "0x" + bytes(value).hex()
        case ValueKind.OTHER:
            return str(value)
        case _:
            assert_never(kind)
