"""Parsing and display of the command's local date/time format."""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

_LOCAL_FORMAT = re.compile(r"(\d{2})/(\d{2})/(\d{4})\s+(\d{2}):(\d{2})")

DATE_FORMAT_HINT = "DD/MM/YYYY HH:MM"


def local_timezone(offset_hours: int) -> timezone:
    return timezone(timedelta(hours=offset_hours))


def parse_local_datetime(value: str, *, offset_hours: int = 7) -> datetime:
    """Parse ``DD/MM/YYYY HH:MM`` at a fixed UTC offset into an aware UTC datetime.

    Raises ``ValueError`` for strings that do not match the pattern or that
    name an impossible date or time.
    """

    match = _LOCAL_FORMAT.fullmatch(value.strip())
    if match is None:
        raise ValueError(f"Expected {DATE_FORMAT_HINT}, got {value!r}")
    day, month, year, hour, minute = (int(part) for part in match.groups())
    try:
        local = datetime(year, month, day, hour, minute, tzinfo=local_timezone(offset_hours))
    except ValueError as exc:
        raise ValueError(f"Invalid date/time {value!r}: {exc}") from exc
    return local.astimezone(timezone.utc)


def format_local(moment: datetime, *, offset_hours: int = 7, label: str = "WIB") -> str:
    local = moment.astimezone(local_timezone(offset_hours))
    return f"{local.strftime('%a, %d %b %Y %H:%M')} {label}"


def format_date_range(
    start: datetime, end: datetime, *, offset_hours: int = 7, label: str = "WIB"
) -> str:
    return (
        f"**{format_local(start, offset_hours=offset_hours, label=label)}** - "
        f"**{format_local(end, offset_hours=offset_hours, label=label)}**"
    )


__all__ = [
    "DATE_FORMAT_HINT",
    "format_date_range",
    "format_local",
    "local_timezone",
    "parse_local_datetime",
]
