"""Resolve locale-ambiguous export dates and times into absolute instants."""

from __future__ import annotations

import logging
import re
from datetime import datetime

from dateutil import tz

from chat_archive import config

logger = logging.getLogger(__name__)

DAY_FIRST = "day_first"
MONTH_FIRST = "month_first"

_DATE_PARTS = re.compile(r"^(\d{1,2})[./-](\d{1,2})[./-](\d{4}|\d{2})$")
_TIME_PARTS = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?(?:\s*([AaPp][Mm]))?$")


def split_date(date_text: str, order: str = config.DATE_ORDER) -> tuple[int, int, int] | None:
    """Return (year, month, day) from a date token, or None if malformed.

    A first field above 12 is always the day, a second field above 12 is
    always the day, and only when both fit as months does `order` decide.
    """
    match = _DATE_PARTS.match(date_text.strip())
    if not match:
        return None
    first, second, year = (int(g) for g in match.groups())

    if year < 100:
        year += 2000

    if first > 12:
        day, month = first, second
    elif second > 12:
        month, day = first, second
    elif order == MONTH_FIRST:
        month, day = first, second
    else:
        day, month = first, second
    return year, month, day


def split_time(time_text: str) -> tuple[int, int, int] | None:
    """Return (hour, minute, second) in 24h form, or None if malformed."""
    match = _TIME_PARTS.match(time_text.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    meridiem = (match.group(4) or "").upper()

    if meridiem == "PM" and hour < 12:
        hour += 12
    elif meridiem == "AM" and hour == 12:
        hour = 0
    return hour, minute, second


def try_resolve_timestamp(
    date_text: str,
    time_text: str,
    order: str = config.DATE_ORDER,
) -> datetime | None:
    """Combine date and time tokens into a local-time aware datetime."""
    date_parts = split_date(date_text, order)
    time_parts = split_time(time_text)
    if date_parts is None or time_parts is None:
        return None
    try:
        return datetime(*date_parts, *time_parts, tzinfo=tz.tzlocal())
    except ValueError:
        return None


def resolve_timestamp(
    date_text: str,
    time_text: str,
    order: str = config.DATE_ORDER,
) -> datetime:
    """Like try_resolve_timestamp, but falls back to the current instant."""
    resolved = try_resolve_timestamp(date_text, time_text, order)
    if resolved is None:
        logger.debug("Unresolvable timestamp %r %r, using now", date_text, time_text)
        return datetime.now(tz.tzlocal())
    return resolved


def to_epoch_ms(instant: datetime) -> int:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=tz.tzlocal())
    return int(instant.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz.tzlocal())
