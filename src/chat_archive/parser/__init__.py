"""Streaming parser for exported chat logs (iOS and Android dialects)."""

from chat_archive.parser.attachments import extract_attachment_filename
from chat_archive.parser.classifier import detect_message_type
from chat_archive.parser.dates import resolve_timestamp, try_resolve_timestamp
from chat_archive.parser.dialects import ANDROID, IOS, detect_dialect, parse_line
from chat_archive.parser.lines import LineBuffer, iter_file_lines, iter_lines
from chat_archive.parser.models import (
    ChatInfo,
    ParsedLine,
    ParsedMessage,
    ParseResult,
    ParseWarning,
)
from chat_archive.parser.orchestrator import (
    ChatParser,
    display_name_from_filename,
    parse_file,
    parse_file_async,
    parse_stream,
    parse_text,
)
from chat_archive.parser.sanitizer import sanitize

__all__ = [
    "ANDROID",
    "IOS",
    "ChatInfo",
    "ChatParser",
    "LineBuffer",
    "ParsedLine",
    "ParsedMessage",
    "ParseResult",
    "ParseWarning",
    "detect_dialect",
    "detect_message_type",
    "display_name_from_filename",
    "extract_attachment_filename",
    "iter_file_lines",
    "iter_lines",
    "parse_file",
    "parse_file_async",
    "parse_line",
    "parse_stream",
    "parse_text",
    "resolve_timestamp",
    "sanitize",
    "try_resolve_timestamp",
]
