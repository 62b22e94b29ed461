"""Locate media files that came with an export and key them by filename."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

MEDIA_EXTENSIONS = frozenset({
    # Images and stickers
    ".jpg", ".jpeg", ".png", ".webp", ".gif",
    # Video
    ".mp4", ".mov", ".3gp", ".avi",
    # Audio and voice notes
    ".opus", ".mp3", ".m4a", ".wav", ".ogg", ".aac",
    # Documents
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".txt", ".csv",
    # Contacts
    ".vcf",
})

_MACOS_METADATA = "__macosx"


def is_media_file(filename: str) -> bool:
    lower = filename.lower()
    if _MACOS_METADATA in lower:
        return False
    name = Path(lower).name
    # The chat transcript itself
    if name.endswith(".txt") and "chat" in name:
        return False
    return Path(lower).suffix in MEDIA_EXTENSIONS


def collect_media(directory: Path) -> dict[str, str]:
    """Map lower-cased filename -> path for every media file under directory."""
    directory = Path(directory)
    media: dict[str, str] = {}
    if not directory.is_dir():
        return media
    for path in sorted(directory.rglob("*")):
        if not path.is_file() or _MACOS_METADATA in str(path).lower():
            continue
        if is_media_file(path.name):
            media[path.name.lower()] = str(path)
    return media


def move_media(source_dir: Path, dest_dir: Path) -> dict[str, str]:
    """Move media files from an extraction folder into permanent storage."""
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    moved: dict[str, str] = {}
    for key, path in collect_media(source_dir).items():
        target = dest_dir / Path(path).name
        try:
            shutil.move(path, target)
        except OSError as e:
            logger.warning("Failed to move media file %s: %s", path, e)
            continue
        moved[key] = str(target)
    logger.info("Moved %d media files to %s", len(moved), dest_dir)
    return moved
