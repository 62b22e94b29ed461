"""Records returned by the message store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Chat:
    id: int
    name: str
    source_platform: str  # "ios" | "android" | "unknown"
    import_date: datetime
    file_path: str | None = None
    metadata: dict = field(default_factory=dict)


@dataclass
class Sender:
    id: int
    name: str
    display_name: str | None = None
    color: str | None = None


@dataclass
class PersistedMessage:
    """A stored message; the sender is a resolved id, not a name."""

    id: int
    chat_id: int
    sender_id: int | None  # None => system-authored
    timestamp: datetime
    content: str
    type: str
    is_media_omitted: bool = False
    media_uri: str | None = None
    reply_to_id: int | None = None
    sentiment_score: float | None = None
    raw_text: str | None = None
    sender_name: str | None = None  # joined in for display


@dataclass
class SearchHit:
    message: PersistedMessage
    chat_name: str
    matched_by: str  # "fts" | "substring"


@dataclass
class ChatStats:
    total_messages: int
    active_days: int
    first_message: datetime | None = None
    last_message: datetime | None = None


@dataclass
class SenderCount:
    sender_name: str
    count: int


@dataclass
class DayCount:
    day: str  # "Sun" .. "Sat"
    count: int


@dataclass
class HourCount:
    hour: str  # "00" .. "23"
    count: int
