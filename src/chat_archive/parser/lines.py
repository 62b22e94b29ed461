"""Split exported chat text into logical lines, incrementally if needed."""

from __future__ import annotations

import asyncio
import codecs
import logging
import re
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Callable, Iterator

from chat_archive import config
from chat_archive.exceptions import ExportFileError

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r?\n")

BOM = "\ufeff"


class LineBuffer:
    """Accumulate text chunks and hand back only completed lines.

    The trailing fragment after the last line break is held until a later
    chunk terminates it, or until the final chunk / flush().
    """

    def __init__(self) -> None:
        self._carry = ""

    def add_chunk(self, chunk: str, final: bool = False) -> list[str]:
        text = self._carry + chunk
        lines = _LINE_BREAK.split(text)
        # A "\r" at the very end may be the first half of a "\r\n" pair
        self._carry = lines.pop()
        if final:
            lines.extend(self.flush())
        return lines

    def flush(self) -> list[str]:
        remainder, self._carry = self._carry, ""
        if remainder.endswith("\r"):
            remainder = remainder[:-1]
        return [remainder] if remainder else []


def iter_lines(text: str) -> Iterator[str]:
    """Yield the lines of an in-memory export, minus any leading BOM."""
    if text.startswith(BOM):
        text = text[len(BOM):]
    buffer = LineBuffer()
    yield from buffer.add_chunk(text, final=True)


def iter_stream_chunks(
    stream: BinaryIO,
    chunk_size: int = config.CHUNK_SIZE,
    total_size: int | None = None,
    on_progress: Callable[[float], None] | None = None,
) -> Iterator[list[str]]:
    """Yield batches of lines read from a binary stream, one batch per chunk.

    Bytes are decoded incrementally so multi-byte characters split across
    chunk boundaries survive. A leading UTF-8 BOM is dropped.
    """
    decoder = codecs.getincrementaldecoder("utf-8-sig")(errors="replace")
    buffer = LineBuffer()
    consumed = 0

    while True:
        data = stream.read(chunk_size)
        if not data:
            break
        consumed += len(data)
        lines = buffer.add_chunk(decoder.decode(data))
        logger.debug("Read %d bytes, %d complete lines", consumed, len(lines))
        if lines:
            yield lines
        if on_progress and total_size:
            on_progress(min(consumed / total_size, 1.0))

    tail = buffer.add_chunk(decoder.decode(b"", final=True), final=True)
    if tail:
        yield tail
    if on_progress:
        on_progress(1.0)


def iter_file_chunks(
    path: Path,
    chunk_size: int = config.CHUNK_SIZE,
    on_progress: Callable[[float], None] | None = None,
) -> Iterator[list[str]]:
    """Yield batches of lines from an export file on disk."""
    path = Path(path)
    if not path.exists():
        raise ExportFileError(f"Export file not found: {path}")
    try:
        total_size = path.stat().st_size
        with path.open("rb") as stream:
            yield from iter_stream_chunks(stream, chunk_size, total_size, on_progress)
    except OSError as e:
        raise ExportFileError(f"Failed to read export file {path}: {e}") from e


def iter_file_lines(path: Path, chunk_size: int = config.CHUNK_SIZE) -> Iterator[str]:
    for lines in iter_file_chunks(path, chunk_size):
        yield from lines


async def aiter_file_chunks(
    path: Path,
    chunk_size: int = config.CHUNK_SIZE,
    on_progress: Callable[[float], None] | None = None,
) -> AsyncIterator[list[str]]:
    """Async variant of iter_file_chunks; each chunk is read in a worker thread."""
    chunks = iter_file_chunks(path, chunk_size, on_progress)
    try:
        while True:
            lines = await asyncio.to_thread(next, chunks, None)
            if lines is None:
                break
            yield lines
    finally:
        chunks.close()
