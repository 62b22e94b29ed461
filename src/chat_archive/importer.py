"""Import a chat export (.txt or .zip with media) into the store."""

from __future__ import annotations

import logging
import shutil
import time
import zipfile
from pathlib import Path

from chat_archive import config
from chat_archive.exceptions import ExportFileError
from chat_archive.media import is_media_file
from chat_archive.parser.models import ParseResult
from chat_archive.parser.orchestrator import display_name_from_filename, parse_file, parse_stream
from chat_archive.storage.store import ChatStore

logger = logging.getLogger(__name__)


def find_chat_member(bundle: zipfile.ZipFile) -> str:
    """Pick the transcript inside an export zip, preferring '*chat*.txt'."""
    candidates = [
        name for name in bundle.namelist()
        if name.lower().endswith(".txt") and "__macosx" not in name.lower()
    ]
    if not candidates:
        raise ExportFileError("No .txt chat export found inside the zip file.")
    for name in candidates:
        if "chat" in Path(name).name.lower():
            return name
    return candidates[0]


def parse_export_zip(
    zip_path: Path,
    media_dir: Path | None = None,
    **kwargs,
) -> tuple[ParseResult, dict[str, str]]:
    """Parse the transcript in a zip and extract its media into media_dir.

    Returns the parse result and a {lower-cased filename: path} media map.
    """
    zip_path = Path(zip_path)
    media_map: dict[str, str] = {}
    try:
        with zipfile.ZipFile(zip_path) as bundle:
            member = find_chat_member(bundle)
            with bundle.open(member) as stream:
                result = parse_stream(
                    stream,
                    chat_name=display_name_from_filename(zip_path.name),
                    file_path=str(zip_path),
                    **kwargs,
                )
            if media_dir is not None and result.recognized:
                media_dir = Path(media_dir)
                media_dir.mkdir(parents=True, exist_ok=True)
                for info in bundle.infolist():
                    filename = Path(info.filename).name
                    if info.is_dir() or not filename or not is_media_file(info.filename):
                        continue
                    target = media_dir / filename
                    with bundle.open(info) as src, target.open("wb") as dst:
                        shutil.copyfileobj(src, dst)
                    media_map[filename.lower()] = str(target)
    except zipfile.BadZipFile as e:
        raise ExportFileError(f"Not a valid zip file: {zip_path}") from e
    except OSError as e:
        raise ExportFileError(f"Failed to read {zip_path}: {e}") from e
    return result, media_map


def import_export(
    path: Path,
    store: ChatStore,
    media_root: Path | None = None,
    **kwargs,
) -> int:
    """Parse and ingest one export file; returns the new chat id.

    Raises FormatNotRecognizedError when the file is not a chat export and
    IngestError when the database write fails.
    """
    path = Path(path)
    if not path.exists():
        raise ExportFileError(f"Export file not found: {path}")

    suffix = path.suffix.lower()
    started = time.monotonic()
    if suffix == ".zip":
        import_id = f"import_{int(time.time() * 1000)}"
        media_dir = Path(media_root or config.MEDIA_DIR) / import_id
        result, media_map = parse_export_zip(path, media_dir, **kwargs)
    elif suffix == ".txt":
        result, media_map = parse_file(path, **kwargs), {}
    else:
        raise ExportFileError(f"Expected a .txt or .zip export, got {path.name}")

    result.raise_for_status()
    chat_id = store.ingest(result, media_map)
    logger.info(
        "Imported %s as chat %d in %.2fs (%d messages, %d media, %d warnings)",
        path.name, chat_id, time.monotonic() - started,
        len(result.messages), len(media_map), len(result.warnings),
    )
    return chat_id
