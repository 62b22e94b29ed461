"""Self-contained backup bundles: one chat as JSON plus its media files.

Bundle layout (zip):
    chat_data.json   chat metadata and every message, senders by name
    media/           each linked media file, keyed by filename
"""

from __future__ import annotations

import json
import logging
import re
import tempfile
import time
import zipfile
from datetime import datetime
from pathlib import Path

from dateutil import parser as date_parser
from dateutil import tz

from chat_archive import config
from chat_archive.exceptions import ArchiveError
from chat_archive.media import move_media
from chat_archive.parser.models import ChatInfo, ParsedMessage, ParseResult
from chat_archive.storage.store import ChatStore

logger = logging.getLogger(__name__)

ARCHIVE_VERSION = 1
CHAT_DATA_FILE = "chat_data.json"
MEDIA_FOLDER = "media"


def build_chat_export(store: ChatStore, chat_id: int) -> dict:
    """Serialize a stored chat into the bundle's JSON structure."""
    chat = store.get_chat(chat_id)
    messages = store.get_all_messages(chat_id)
    return {
        "version": ARCHIVE_VERSION,
        "exported_at": datetime.now(tz.tzlocal()).isoformat(),
        "chat": {
            "name": chat.name,
            "source_platform": chat.source_platform,
            "import_date": chat.import_date.isoformat(),
            "file_path": chat.file_path,
            "metadata": chat.metadata,
        },
        "senders": [
            {"name": s.name, "display_name": s.display_name, "color": s.color}
            for s in store.get_chat_senders(chat_id)
        ],
        "messages": [
            {
                "sender_name": m.sender_name,
                "timestamp": m.timestamp.isoformat(),
                "content": m.content,
                "type": m.type,
                "is_media_omitted": m.is_media_omitted,
                "media_file": Path(m.media_uri).name if m.media_uri else None,
                "raw_text": m.raw_text,
            }
            for m in messages
        ],
    }


def export_chat_archive(store: ChatStore, chat_id: int, dest_dir: Path) -> Path:
    """Write `<name>_<YYYY-MM-DD>.zip` for one chat into dest_dir."""
    data = build_chat_export(store, chat_id)
    safe_name = re.sub(r"[^a-zA-Z0-9]", "_", data["chat"]["name"]) or "chat"
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    zip_path = dest_dir / f"{safe_name}_{datetime.now().strftime('%Y-%m-%d')}.zip"

    try:
        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as bundle:
            bundle.writestr(CHAT_DATA_FILE, json.dumps(data, indent=2, ensure_ascii=False))
            for message in store.get_media_messages(chat_id):
                media_path = Path(message.media_uri)
                if not media_path.is_file():
                    logger.warning("Media file missing, not archived: %s", media_path)
                    continue
                bundle.write(media_path, f"{MEDIA_FOLDER}/{media_path.name}")
    except OSError as e:
        raise ArchiveError(f"Failed to write archive {zip_path}: {e}") from e

    logger.info("Exported chat %d to %s", chat_id, zip_path)
    return zip_path


def parse_chat_export(data: dict) -> ParseResult:
    """Rebuild a ParseResult from the bundle's JSON structure."""
    if not data.get("version") or not data.get("chat") or "messages" not in data:
        raise ArchiveError("Invalid backup format: version, chat and messages are required.")
    if data["version"] > ARCHIVE_VERSION:
        raise ArchiveError(f"Unsupported backup version {data['version']}.")

    chat = data["chat"]
    try:
        messages = [
            ParsedMessage(
                line_number=index + 1,
                sender_name=m.get("sender_name"),
                timestamp=date_parser.isoparse(m["timestamp"]),
                content=m.get("content") or "",
                type=m["type"],
                is_media_omitted=bool(m.get("is_media_omitted")),
                attachment_name=(m.get("media_file") or "").lower() or None,
                raw_text=m.get("raw_text") or "",
            )
            for index, m in enumerate(data["messages"])
        ]
        info = ChatInfo(
            name=chat["name"],
            source_platform=chat.get("source_platform") or "unknown",
            import_date=date_parser.isoparse(chat["import_date"]),
            file_path=chat.get("file_path"),
            metadata=chat.get("metadata") or {},
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ArchiveError(f"Invalid backup format: {e}") from e

    return ParseResult(
        chat=info,
        messages=messages,
        senders={m.sender_name for m in messages if m.sender_name},
    )


def import_chat_archive(
    store: ChatStore,
    zip_path: Path,
    media_root: Path | None = None,
) -> int:
    """Restore a bundle written by export_chat_archive; returns the new chat id."""
    zip_path = Path(zip_path)
    media_root = Path(media_root or config.MEDIA_DIR)

    with tempfile.TemporaryDirectory(prefix="chat-restore-") as tmp:
        extract_dir = Path(tmp)
        try:
            with zipfile.ZipFile(zip_path) as bundle:
                bundle.extractall(extract_dir)
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveError(f"Cannot open backup {zip_path}: {e}") from e

        data_file = extract_dir / CHAT_DATA_FILE
        if not data_file.exists():
            raise ArchiveError(f"Invalid backup: {CHAT_DATA_FILE} not found")
        try:
            data = json.loads(data_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ArchiveError(f"Invalid backup: unreadable {CHAT_DATA_FILE}: {e}") from e

        result = parse_chat_export(data)

        media_map: dict[str, str] = {}
        if (extract_dir / MEDIA_FOLDER).is_dir():
            import_id = f"import_{int(time.time() * 1000)}"
            media_map = move_media(extract_dir / MEDIA_FOLDER, media_root / import_id)

    chat_id = store.ingest(result, media_map)
    store.link_media(chat_id, media_map)
    logger.info("Restored chat %d from %s", chat_id, zip_path)
    return chat_id
