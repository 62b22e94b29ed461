"""Import exported chat logs into a searchable local archive."""

from chat_archive.importer import import_export
from chat_archive.parser import ParseResult, parse_file, parse_file_async, parse_text
from chat_archive.storage import ChatStore

__all__ = [
    "ChatStore",
    "ParseResult",
    "import_export",
    "parse_file",
    "parse_file_async",
    "parse_text",
]
