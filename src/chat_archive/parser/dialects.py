"""Timestamp grammars of the two supported export dialects.

iOS (bracketed, with seconds):
    [20/06/2021, 14:30:00] Sender Name: Message content
    [20/06/21, 2:30:00 PM] Sender Name: Message content

Android (dash separator, no seconds):
    20/06/2021, 14:30 - Sender Name: Message content
    20/06/21, 2:30 pm - Sender Name: Message content
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from chat_archive.parser.models import PLATFORM_ANDROID, PLATFORM_IOS, ParsedLine
from chat_archive.parser.sanitizer import strip_leading_controls

_DATE = r"\d{1,2}[./-]\d{1,2}[./-]\d{2,4}"

# Sender runs up to the first ": "; anything without one is a system notice
SENDER_AND_BODY = re.compile(r"^(.*?):\s(.*)", re.DOTALL)


@dataclass(frozen=True)
class Dialect:
    platform: str
    timestamp_prefix: re.Pattern


IOS = Dialect(
    platform=PLATFORM_IOS,
    timestamp_prefix=re.compile(
        rf"^\[({_DATE}),\s(\d{{1,2}}:\d{{2}}:\d{{2}}(?:\s[AP]M)?)\]\s"
    ),
)

ANDROID = Dialect(
    platform=PLATFORM_ANDROID,
    timestamp_prefix=re.compile(
        rf"^({_DATE}),\s(\d{{1,2}}:\d{{2}}(?:\s(?i:[ap]m))?)\s-\s"
    ),
)

# Android is tried first; the two grammars cannot both match one line
DIALECTS = (ANDROID, IOS)


def detect_dialect(line: str) -> Dialect | None:
    """Return the dialect whose timestamp prefix starts this line, if any."""
    candidate = strip_leading_controls(line)
    for dialect in DIALECTS:
        if dialect.timestamp_prefix.match(candidate):
            return dialect
    return None


def parse_line(line: str, dialect: Dialect) -> ParsedLine | None:
    """Decode a head line into its raw fields; None means continuation."""
    candidate = strip_leading_controls(line)
    match = dialect.timestamp_prefix.match(candidate)
    if not match:
        return None

    date_text, time_text = match.group(1), match.group(2)
    remainder = candidate[match.end():]

    parts = SENDER_AND_BODY.match(remainder)
    if parts:
        return ParsedLine(
            date_text=date_text,
            time_text=time_text,
            sender=parts.group(1),
            body=parts.group(2),
        )
    return ParsedLine(date_text=date_text, time_text=time_text, sender=None, body=remainder)
