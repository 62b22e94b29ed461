"""Environment-driven defaults."""

from __future__ import annotations

import os
from pathlib import Path

DATA_HOME = Path(os.environ.get("CHAT_ARCHIVE_HOME", Path.home() / ".chat_archive"))

DB_PATH = Path(os.environ.get("CHAT_ARCHIVE_DB_PATH", DATA_HOME / "archive.db"))

MEDIA_DIR = Path(os.environ.get("CHAT_ARCHIVE_MEDIA_DIR", DATA_HOME / "media"))

# How ambiguous dates like 03/04/2021 are read: "day_first" or "month_first"
DATE_ORDER = os.environ.get("CHAT_ARCHIVE_DATE_ORDER", "day_first")

CHUNK_SIZE = int(os.environ.get("CHAT_ARCHIVE_CHUNK_SIZE", 1024 * 1024))
