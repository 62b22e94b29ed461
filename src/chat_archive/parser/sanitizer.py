"""Strip invisible formatting characters that exporters inject into text."""

from __future__ import annotations

import re

# LRM, RLM, embeddings/overrides (U+202A-U+202E), isolates (U+2066-U+2069)
BIDI_CONTROL_CHARS = (
    "\u200e\u200f"
    "\u202a\u202b\u202c\u202d\u202e"
    "\u2066\u2067\u2068\u2069"
)

_BIDI_CONTROLS = re.compile("[\u200e\u200f\u202a-\u202e\u2066-\u2069]")


def sanitize(text: str | None) -> str:
    """Remove bidi control characters and trim surrounding whitespace.

    Idempotent, and leaves every visible character untouched.
    """
    if not text:
        return ""
    return _BIDI_CONTROLS.sub("", text).strip()


def strip_leading_controls(line: str) -> str:
    """Drop bidi marks that precede a timestamp, keeping everything else."""
    return line.lstrip(BIDI_CONTROL_CHARS)
