"""Single-pass driver turning export lines into a ParseResult."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Callable, Iterable

from dateutil import tz

from chat_archive import config
from chat_archive.parser.attachments import extract_attachment_filename
from chat_archive.parser.classifier import detect_message_type, is_media_omitted
from chat_archive.parser.dates import try_resolve_timestamp
from chat_archive.parser.dialects import Dialect, detect_dialect, parse_line
from chat_archive.parser.lines import aiter_file_chunks, iter_file_chunks, iter_lines, iter_stream_chunks
from chat_archive.parser.models import (
    PLATFORM_UNKNOWN,
    SYSTEM_SENDER,
    WARNING_ORPHANED,
    WARNING_TIMESTAMP,
    WARNING_UNRECOGNIZED,
    ChatInfo,
    ParsedLine,
    ParsedMessage,
    ParseResult,
    ParseWarning,
)
from chat_archive.parser.sanitizer import sanitize

logger = logging.getLogger(__name__)

# Non-blank lines allowed before a timestamp prefix must have appeared
DETECTION_LINE_LIMIT = 50

AWAITING_PLATFORM = "awaiting_platform"
PLATFORM_KNOWN = "platform_known"
HALTED = "halted"

_EXPORT_NAME_PREFIX = re.compile(r"^WhatsApp Chat (?:- |with )", re.IGNORECASE)
_EXPORT_NAME_SUFFIX = re.compile(r"\.(?:txt|zip)$", re.IGNORECASE)


def display_name_from_filename(filename: str) -> str:
    """'WhatsApp Chat with Alice.txt' -> 'Alice'."""
    name = Path(filename).name
    name = _EXPORT_NAME_PREFIX.sub("", name)
    name = _EXPORT_NAME_SUFFIX.sub("", name)
    return name.strip() or filename


@dataclass
class _PendingMessage:
    """The message currently absorbing continuation lines."""

    line_number: int
    sender_name: str | None
    timestamp: datetime
    type: str
    is_media_omitted: bool
    attachment_name: str | None
    content_lines: list[str] = field(default_factory=list)
    raw_lines: list[str] = field(default_factory=list)

    def append(self, line: str) -> None:
        self.content_lines.append(sanitize(line))
        self.raw_lines.append(line)

    def finalize(self) -> ParsedMessage:
        lines = list(self.content_lines)
        while len(lines) > 1 and not lines[-1]:
            lines.pop()
        return ParsedMessage(
            line_number=self.line_number,
            sender_name=self.sender_name,
            timestamp=self.timestamp,
            content="\n".join(lines),
            type=self.type,
            is_media_omitted=self.is_media_omitted,
            attachment_name=self.attachment_name,
            raw_text="\n".join(self.raw_lines),
        )


class ChatParser:
    """Line-at-a-time state machine: awaiting_platform -> platform_known.

    A run of DETECTION_LINE_LIMIT non-blank lines without any timestamp
    prefix moves it to halted, after which input is ignored. Individual
    malformed lines only ever produce warnings.

    Not safe to share between threads; use one parser per input.
    """

    def __init__(
        self,
        chat_name: str,
        file_path: str | None = None,
        date_order: str = config.DATE_ORDER,
        detection_limit: int = DETECTION_LINE_LIMIT,
    ):
        self.chat_name = chat_name
        self.file_path = file_path
        self.date_order = date_order
        self.detection_limit = detection_limit

        self.state = AWAITING_PLATFORM
        self.dialect: Dialect | None = None
        self.line_number = 0

        self._candidates = 0
        self._held_orphans: list[int] = []
        self._pending: _PendingMessage | None = None
        self._messages: list[ParsedMessage] = []
        self._senders: set[str] = set()
        self._warnings: list[ParseWarning] = []
        self._finished = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, line: str) -> None:
        if self._finished:
            raise RuntimeError("ChatParser.feed() called after finish()")
        self.line_number += 1

        if self.state == HALTED:
            return
        if self.state == AWAITING_PLATFORM:
            self._detect(line)
            if self.state != PLATFORM_KNOWN:
                return

        parsed = parse_line(line, self.dialect)
        if parsed is not None:
            self._start_message(parsed, line)
        elif self._pending is not None:
            self._pending.append(line)
        elif line.strip():
            self._warn(WARNING_ORPHANED, "orphaned line before any message")

    def feed_lines(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.feed(line)

    def finish(self) -> ParseResult:
        if not self._finished:
            self._finished = True
            self._flush_pending()
            if self.state == AWAITING_PLATFORM:
                self._warn(
                    WARNING_UNRECOGNIZED,
                    f"format not recognized by end of input (line {self.line_number})",
                )
            self._log_summary()

        platform = self.dialect.platform if self.dialect else PLATFORM_UNKNOWN
        return ParseResult(
            chat=ChatInfo(
                name=self.chat_name,
                source_platform=platform,
                import_date=datetime.now(tz.tzlocal()),
                file_path=self.file_path,
            ),
            messages=list(self._messages),
            senders=set(self._senders),
            warnings=list(self._warnings),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _detect(self, line: str) -> None:
        if not line.strip():
            return
        dialect = detect_dialect(line)
        if dialect is not None:
            self.dialect = dialect
            self.state = PLATFORM_KNOWN
            logger.debug("Detected %s export at line %d", dialect.platform, self.line_number)
            for line_number in self._held_orphans:
                self._warn(WARNING_ORPHANED, "orphaned line before any message", line_number)
            self._held_orphans = []
            return

        self._candidates += 1
        self._held_orphans.append(self.line_number)
        if self._candidates >= self.detection_limit:
            self.state = HALTED
            self._held_orphans = []
            self._warn(
                WARNING_UNRECOGNIZED,
                f"format not recognized by line {self.detection_limit}",
            )

    def _start_message(self, parsed: ParsedLine, raw_line: str) -> None:
        self._flush_pending()

        sender_name = sanitize(parsed.sender) if parsed.sender is not None else None
        if not sender_name or sender_name == SYSTEM_SENDER:
            sender_name = None
        else:
            self._senders.add(sender_name)

        timestamp = try_resolve_timestamp(parsed.date_text, parsed.time_text, self.date_order)
        if timestamp is None:
            self._warn(
                WARNING_TIMESTAMP,
                f"unresolvable timestamp {parsed.date_text!r} {parsed.time_text!r}, "
                "using import time",
            )
            timestamp = datetime.now(tz.tzlocal())

        body = sanitize(parsed.body)
        self._pending = _PendingMessage(
            line_number=self.line_number,
            sender_name=sender_name,
            timestamp=timestamp,
            type=detect_message_type(body, sender_is_system=sender_name is None),
            is_media_omitted=is_media_omitted(body),
            attachment_name=extract_attachment_filename(body),
            content_lines=[body],
            raw_lines=[raw_line],
        )

    def _flush_pending(self) -> None:
        if self._pending is not None:
            self._messages.append(self._pending.finalize())
            self._pending = None

    def _warn(self, kind: str, message: str, line_number: int | None = None) -> None:
        self._warnings.append(
            ParseWarning(
                line_number=line_number if line_number is not None else self.line_number,
                kind=kind,
                message=message,
            )
        )

    def _log_summary(self) -> None:
        if self.dialect is None:
            logger.warning(
                "No chat export format recognized in %r (%d lines read)",
                self.chat_name,
                self.line_number,
            )
            return
        logger.info(
            "Parsed %r: platform=%s messages=%d senders=%d warnings=%d",
            self.chat_name,
            self.dialect.platform,
            len(self._messages),
            len(self._senders),
            len(self._warnings),
        )


def parse_lines(lines: Iterable[str], chat_name: str, **kwargs) -> ParseResult:
    parser = ChatParser(chat_name, **kwargs)
    parser.feed_lines(lines)
    return parser.finish()


def parse_text(text: str, chat_name: str = "Chat", **kwargs) -> ParseResult:
    """Parse an export already held in memory."""
    return parse_lines(iter_lines(text), chat_name, **kwargs)


def parse_stream(
    stream: BinaryIO,
    chat_name: str,
    chunk_size: int = config.CHUNK_SIZE,
    **kwargs,
) -> ParseResult:
    """Parse a binary stream (e.g. a zip member) chunk by chunk."""
    parser = ChatParser(chat_name, **kwargs)
    for lines in iter_stream_chunks(stream, chunk_size):
        parser.feed_lines(lines)
    return parser.finish()


def parse_file(
    path: Path,
    chat_name: str | None = None,
    chunk_size: int = config.CHUNK_SIZE,
    on_progress: Callable[[float], None] | None = None,
    **kwargs,
) -> ParseResult:
    """Parse an export file without loading it whole into memory."""
    path = Path(path)
    parser = ChatParser(
        chat_name or display_name_from_filename(path.name),
        file_path=str(path),
        **kwargs,
    )
    for lines in iter_file_chunks(path, chunk_size, on_progress):
        parser.feed_lines(lines)
    return parser.finish()


async def parse_file_async(
    path: Path,
    chat_name: str | None = None,
    chunk_size: int = config.CHUNK_SIZE,
    on_progress: Callable[[float], None] | None = None,
    **kwargs,
) -> ParseResult:
    """Same as parse_file, but hands control back to the event loop per chunk."""
    path = Path(path)
    parser = ChatParser(
        chat_name or display_name_from_filename(path.name),
        file_path=str(path),
        **kwargs,
    )
    async for lines in aiter_file_chunks(path, chunk_size, on_progress):
        parser.feed_lines(lines)
    return parser.finish()
