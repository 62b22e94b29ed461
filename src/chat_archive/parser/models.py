"""Data models produced by the chat export parser."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from chat_archive.exceptions import FormatNotRecognizedError

PLATFORM_IOS = "ios"
PLATFORM_ANDROID = "android"
PLATFORM_UNKNOWN = "unknown"
PLATFORMS = (PLATFORM_IOS, PLATFORM_ANDROID, PLATFORM_UNKNOWN)

MESSAGE_TYPES = (
    "text",
    "image",
    "video",
    "audio",
    "sticker",
    "gif",
    "document",
    "contact",
    "location",
    "system",
    "call_log",
    "deleted",
)

# Sender marker for lines the exporting client wrote itself
SYSTEM_SENDER = "System"

WARNING_UNRECOGNIZED = "unrecognized_format"
WARNING_ORPHANED = "orphaned_line"
WARNING_TIMESTAMP = "invalid_timestamp"


@dataclass(frozen=True)
class ParsedLine:
    """Raw fields of a head line, before any interpretation."""

    date_text: str
    time_text: str
    sender: str | None  # None for system-authored lines
    body: str


@dataclass(frozen=True)
class ParsedMessage:
    """A finished message carrying its sender as a plain name."""

    line_number: int  # placeholder id until persisted
    sender_name: str | None  # None => system-authored
    timestamp: datetime
    content: str
    type: str
    is_media_omitted: bool = False
    attachment_name: str | None = None  # lower-cased, the media join key
    raw_text: str = ""

    @property
    def is_system(self) -> bool:
        return self.sender_name is None


@dataclass
class ChatInfo:
    """Chat metadata from one parse pass; not yet persisted."""

    name: str
    source_platform: str  # "ios" | "android" | "unknown"
    import_date: datetime
    file_path: str | None = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ParseWarning:
    line_number: int
    kind: str
    message: str

    def __str__(self) -> str:
        return f"line {self.line_number}: {self.message}"


@dataclass
class ParseResult:
    """Everything one parse pass produced, consumed once by ingestion."""

    chat: ChatInfo
    messages: list[ParsedMessage] = field(default_factory=list)
    senders: set[str] = field(default_factory=set)
    warnings: list[ParseWarning] = field(default_factory=list)

    @property
    def recognized(self) -> bool:
        return self.chat.source_platform != PLATFORM_UNKNOWN

    def raise_for_status(self) -> None:
        """Raise FormatNotRecognizedError when platform detection failed."""
        if not self.recognized:
            detail = next(
                (w.message for w in self.warnings if w.kind == WARNING_UNRECOGNIZED),
                "format not recognized",
            )
            raise FormatNotRecognizedError(
                f"{self.chat.name!r} is not a valid chat export: {detail}"
            )
