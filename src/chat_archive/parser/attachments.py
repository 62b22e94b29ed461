"""Find the media filename an export left inside a message body."""

from __future__ import annotations

import re

# "IMG-20231025-WA0001.jpg (file attached)"
_FILE_ATTACHED = re.compile(r"^(.+?\.\w+)\s*\(file attached\)", re.IGNORECASE)

# "<attached: 00000001-PHOTO-2023-10-25-12-30-45.jpg>"
_ATTACHED_TAG = re.compile(r"<attached:\s*(.+?\.\w+)>", re.IGNORECASE)

# A bare "IMG-20231025-WA0001.jpg" without any marker
_BARE_MEDIA_NAME = re.compile(
    r"\b((?:IMG|VID|AUD|PTT|DOC|STK)-\d{8}-WA\d+\.\w+)", re.IGNORECASE
)

_PATTERNS = (_FILE_ATTACHED, _ATTACHED_TAG, _BARE_MEDIA_NAME)


def extract_attachment_filename(body: str | None) -> str | None:
    """Return the lower-cased attachment filename in `body`, if there is one."""
    if not body:
        return None
    for pattern in _PATTERNS:
        match = pattern.search(body)
        if match:
            return match.group(1).strip().lower()
    return None
