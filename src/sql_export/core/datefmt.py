"""Locale-independent custom date/time format masks.

Masks use the familiar ``yyyy-MM-dd HH:mm:ss`` token style rather than
strftime directives, so the same mask renders identically on every host
regardless of locale settings. Month and day names are always English.

Supported tokens:
    yyyy yy y       year (padded to token length when 3+, two-digit when 1-2)
    MMMM MMM MM M   month name, abbreviated name, padded, unpadded
    dddd ddd dd d   day name, abbreviated name, padded day, unpadded day
    HH H hh h       24-hour and 12-hour clock
    mm m ss s       minute and second
    f..fffffff      fractional seconds, truncated
    F..FFFFFFF      fractional seconds, trailing zeros removed
    tt t            AM/PM designator, first letter only
    zzz zz z        UTC offset (+hh:mm, +hh, +h); empty for naive values
    '...' "..."     quoted literal text
    \\x             literal character
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from functools import lru_cache

_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
_DAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

_TOKEN_CHARS = frozenset("yMdHhmsfFtz")
_MAX_FRACTION_DIGITS = 7

Renderer = Callable[[datetime], str]


def _year(n: int) -> Renderer:
    if n == 1:
        return lambda dt: str(dt.year % 100)
    if n == 2:
        return lambda dt: f"{dt.year % 100:02d}"
    return lambda dt: str(dt.year).zfill(n)


def _month(n: int) -> Renderer:
    if n == 1:
        return lambda dt: str(dt.month)
    if n == 2:
        return lambda dt: f"{dt.month:02d}"
    if n == 3:
        return lambda dt: _MONTH_NAMES[dt.month - 1][:3]
    return lambda dt: _MONTH_NAMES[dt.month - 1]


def _day(n: int) -> Renderer:
    if n == 1:
        return lambda dt: str(dt.day)
    if n == 2:
        return lambda dt: f"{dt.day:02d}"
    if n == 3:
        return lambda dt: _DAY_NAMES[dt.weekday()][:3]
    return lambda dt: _DAY_NAMES[dt.weekday()]


def _hour12(dt: datetime) -> int:
    return dt.hour % 12 or 12


def _padded(getter: Callable[[datetime], int], n: int) -> Renderer:
    if n == 1:
        return lambda dt: str(getter(dt))
    return lambda dt: f"{getter(dt):02d}"


def _fraction(n: int, trim: bool) -> Renderer:
    def render(dt: datetime) -> str:
        # microseconds carry six digits; a seventh is always zero
        digits = f"{dt.microsecond:06d}0"[:n]
        return digits.rstrip("0") if trim else digits

    return render


def _designator(n: int) -> Renderer:
    if n == 1:
        return lambda dt: "A" if dt.hour < 12 else "P"
    return lambda dt: "AM" if dt.hour < 12 else "PM"


def _offset(n: int) -> Renderer:
    def render(dt: datetime) -> str:
        offset = dt.utcoffset()
        if offset is None:
            return ""
        total_minutes = int(offset.total_seconds()) // 60
        sign = "-" if total_minutes < 0 else "+"
        hours, minutes = divmod(abs(total_minutes), 60)
        if n == 1:
            return f"{sign}{hours}"
        if n == 2:
            return f"{sign}{hours:02d}"
        return f"{sign}{hours:02d}:{minutes:02d}"

    return render


def _token(char: str, n: int) -> Renderer:
    match char:
        case "y":
            return _year(n)
        case "M":
            return _month(n)
        case "d":
            return _day(n)
        case "H":
            return _padded(lambda dt: dt.hour, min(n, 2))
        case "h":
            return _padded(_hour12, min(n, 2))
        case "m":
            return _padded(lambda dt: dt.minute, min(n, 2))
        case "s":
            return _padded(lambda dt: dt.second, min(n, 2))
        case "f" | "F":
            if n > _MAX_FRACTION_DIGITS:
                msg = f"Too many fraction digits in date format: {char * n!r}"
                raise ValueError(msg)
            return _fraction(n, trim=char == "F")
        case "t":
            return _designator(n)
        case "z":
            return _offset(n)
    msg = f"Unknown date format token: {char!r}"
    raise ValueError(msg)


def _literal(text: str) -> Renderer:
    return lambda dt: text


@lru_cache(maxsize=32)
def compile_date_format(mask: str) -> Renderer:
    """Compile a date format mask into a renderer function.

    Raises ValueError for an empty mask, an unterminated quoted literal,
    or a dangling backslash escape.
    """
    if not mask:
        msg = "Date format must not be empty"
        raise ValueError(msg)

    parts: list[Renderer] = []
    literal: list[str] = []

    def flush_literal() -> None:
        if literal:
            parts.append(_literal("".join(literal)))
            literal.clear()

    i = 0
    while i < len(mask):
        char = mask[i]
        if char in _TOKEN_CHARS:
            j = i
            while j < len(mask) and mask[j] == char:
                j += 1
            flush_literal()
            parts.append(_token(char, j - i))
            i = j
        elif char in ("'", '"'):
            end = mask.find(char, i + 1)
            if end == -1:
                msg = f"Unterminated quoted literal in date format: {mask!r}"
                raise ValueError(msg)
            literal.append(mask[i + 1 : end])
            i = end + 1
        elif char == "\\":
            if i + 1 >= len(mask):
                msg = f"Dangling escape at end of date format: {mask!r}"
                raise ValueError(msg)
            literal.append(mask[i + 1])
            i += 2
        elif char == "%" and i + 1 < len(mask) and mask[i + 1] in _TOKEN_CHARS:
            # %d means the single-letter token d
            i += 1
        else:
            literal.append(char)
            i += 1
    flush_literal()

    renderers = tuple(parts)

    def render(dt: datetime) -> str:
        return "".join(part(dt) for part in renderers)

    return render
