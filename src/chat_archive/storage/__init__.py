"""SQLite message store with synchronized full-text search."""

from chat_archive.storage.archive import export_chat_archive, import_chat_archive
from chat_archive.storage.models import (
    Chat,
    ChatStats,
    DayCount,
    HourCount,
    PersistedMessage,
    SearchHit,
    Sender,
    SenderCount,
)
from chat_archive.storage.store import ChatStore

__all__ = [
    "ChatStore",
    "Chat",
    "ChatStats",
    "DayCount",
    "HourCount",
    "PersistedMessage",
    "SearchHit",
    "Sender",
    "SenderCount",
    "export_chat_archive",
    "import_chat_archive",
]
