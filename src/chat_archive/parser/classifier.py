"""Assign a message type from the sanitized body text.

Rules are checked in a fixed order and the first hit wins; a line can
match several of them by substring alone.
"""

from __future__ import annotations

from chat_archive.parser.attachments import extract_attachment_filename

MEDIA_OMITTED = "<media omitted>"
FILE_ATTACHED = "(file attached)"
ATTACHED_TAG = "<attached:"

DELETED_PHRASES = frozenset({"this message was deleted", "you deleted this message"})
CALL_PHRASES = ("missed voice call", "missed video call")
MAP_DOMAINS = ("maps.google.com", "maps.apple.com")

EXTENSION_TYPES = {
    ".jpg": "image",
    ".jpeg": "image",
    ".png": "image",
    ".mp4": "video",
    ".mov": "video",
    ".opus": "audio",
    ".mp3": "audio",
    ".m4a": "audio",
    ".wav": "audio",
    ".ogg": "audio",
    ".webp": "sticker",
    ".vcf": "contact",
    ".pdf": "document",
    ".doc": "document",
    ".docx": "document",
    ".xls": "document",
    ".xlsx": "document",
    ".txt": "document",
}


def is_media_omitted(body: str) -> bool:
    return MEDIA_OMITTED in body.lower()


def is_attachment(body: str) -> bool:
    lowered = body.lower()
    if FILE_ATTACHED in lowered or ATTACHED_TAG in lowered:
        return True
    return extract_attachment_filename(body) is not None


def type_for_filename(filename: str | None) -> str:
    """Map an attachment filename to a message type; unknown => document."""
    if not filename:
        return "document"
    dot = filename.rfind(".")
    if dot == -1:
        return "document"
    return EXTENSION_TYPES.get(filename[dot:].lower(), "document")


def detect_message_type(body: str, sender_is_system: bool) -> str:
    if sender_is_system:
        return "system"

    lowered = body.lower()

    # Exported "without media": the real kind is lost, image is the fallback
    if MEDIA_OMITTED in lowered:
        return "image"

    if is_attachment(body):
        return type_for_filename(extract_attachment_filename(body))

    if lowered.strip() in DELETED_PHRASES:
        return "deleted"

    if any(phrase in lowered for phrase in CALL_PHRASES):
        return "call_log"

    if (
        any(domain in lowered for domain in MAP_DOMAINS)
        or lowered.startswith("location: ")
        or "live location" in lowered
    ):
        return "location"

    return "text"
