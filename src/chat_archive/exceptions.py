"""Unified exception hierarchy for chat-archive."""


class ChatArchiveError(Exception):
    """Base exception for all chat-archive errors."""


# Parsing
class ParseError(ChatArchiveError):
    """Base exception for chat export parsing."""


class FormatNotRecognizedError(ParseError):
    """The input is not a recognizable chat export."""


class ExportFileError(ParseError):
    """The export file is missing, unreadable, or has no chat text inside."""


# Storage
class StorageError(ChatArchiveError):
    """Base exception for message store operations."""


class IngestError(StorageError):
    """A parsed chat could not be written; the transaction was rolled back."""


class ChatNotFoundError(StorageError):
    """No chat exists with the requested id."""


# Backup bundles
class ArchiveError(ChatArchiveError):
    """A chat backup bundle is invalid or could not be written."""
