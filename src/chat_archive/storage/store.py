"""Transactional SQLite message store with an FTS5 search index."""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from datetime import date, datetime
from pathlib import Path

from dateutil import tz

from chat_archive import config
from chat_archive.exceptions import ChatNotFoundError, IngestError, StorageError
from chat_archive.parser.attachments import extract_attachment_filename
from chat_archive.parser.dates import from_epoch_ms, to_epoch_ms
from chat_archive.parser.models import ParseResult
from chat_archive.storage.models import (
    Chat,
    ChatStats,
    DayCount,
    HourCount,
    PersistedMessage,
    SearchHit,
    Sender,
    SenderCount,
)
from chat_archive.storage.schema import SCHEMA

logger = logging.getLogger(__name__)

SENDER_COLORS = (
    "#e542a3", "#1f7aec", "#fc9775", "#6bcbef", "#35cd96", "#ba33dc",
    "#dfb610", "#029d00", "#8b7add", "#fe7c7f", "#1ea3a1", "#c36d00",
)

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

# Stored instants are epoch milliseconds; analytics read them in local time
_LOCAL = "(m.timestamp / 1000), 'unixepoch', 'localtime'"

_MESSAGE_COLUMNS = """
    m.id, m.chat_id, m.sender_id, m.timestamp, m.content, m.type,
    m.is_media_omitted, m.media_uri, m.reply_to_id, m.sentiment_score,
    m.raw_text, s.name AS sender_name
"""


def sender_color(name: str) -> str:
    """Deterministic display color for a sender name."""
    digest = hashlib.md5(name.encode("utf-8")).digest()
    return SENDER_COLORS[digest[0] % len(SENDER_COLORS)]


def build_fts_query(text: str) -> str:
    """'hel wor' -> 'hel* wor*': every term a prefix match, all required."""
    return " ".join(f"{term}*" for term in text.split())


def has_index_token(term: str) -> bool:
    """False for terms like "—" that the FTS tokenizer reduces to nothing."""
    return any(ch.isalnum() for ch in term)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ChatStore:
    """Read/write access to the chat archive database."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = Path(db_path or config.DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            return conn
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self.db_path}: {e}") from e

    def init_schema(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize schema: {e}") from e
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def ingest(self, result: ParseResult, media_map: dict[str, str] | None = None) -> int:
        """Persist one parsed chat atomically and return its new id.

        `media_map` maps lower-cased attachment filenames to local URIs.
        On any failure nothing of the chat remains and IngestError is raised.
        """
        media_map = media_map or {}
        chat = result.chat
        names = set(result.senders)
        names.update(m.sender_name for m in result.messages if m.sender_name)

        conn = self._connect()
        try:
            with conn:
                sender_ids = self._resolve_senders(conn, names)
                cursor = conn.execute(
                    """
                    INSERT INTO chats (name, source_platform, import_date, file_path, metadata)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        chat.name,
                        chat.source_platform,
                        to_epoch_ms(chat.import_date),
                        chat.file_path,
                        json.dumps(chat.metadata) if chat.metadata else None,
                    ),
                )
                chat_id = cursor.lastrowid
                conn.executemany(
                    """
                    INSERT INTO messages (
                        chat_id, sender_id, timestamp, content, type,
                        is_media_omitted, media_uri, raw_text
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        (
                            chat_id,
                            sender_ids[msg.sender_name] if msg.sender_name else None,
                            to_epoch_ms(msg.timestamp),
                            msg.content,
                            msg.type,
                            int(msg.is_media_omitted),
                            media_map.get(msg.attachment_name) if msg.attachment_name else None,
                            msg.raw_text,
                        )
                        for msg in result.messages
                    ),
                )
        except sqlite3.Error as e:
            raise IngestError(f"Failed to import chat {chat.name!r}: {e}") from e
        finally:
            conn.close()

        logger.info(
            "Imported chat %d (%r): %d messages, %d senders",
            chat_id, chat.name, len(result.messages), len(names),
        )
        return chat_id

    @staticmethod
    def _resolve_senders(conn: sqlite3.Connection, names: set[str]) -> dict[str, int]:
        """Insert-if-absent then look up; the UNIQUE name column dedupes."""
        sender_ids: dict[str, int] = {}
        for name in sorted(names):
            conn.execute(
                "INSERT OR IGNORE INTO senders (name, color) VALUES (?, ?)",
                (name, sender_color(name)),
            )
            row = conn.execute("SELECT id FROM senders WHERE name = ?", (name,)).fetchone()
            sender_ids[name] = row["id"]
        return sender_ids

    def delete_chat(self, chat_id: int) -> None:
        """Remove a chat, its messages and their index entries."""
        conn = self._connect()
        try:
            with conn:
                # Explicit delete so the FTS trigger sees every row
                conn.execute("DELETE FROM messages WHERE chat_id = ?", (chat_id,))
                cursor = conn.execute("DELETE FROM chats WHERE id = ?", (chat_id,))
                if cursor.rowcount == 0:
                    raise ChatNotFoundError(f"Chat {chat_id} not found.")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete chat {chat_id}: {e}") from e
        finally:
            conn.close()
        logger.info("Deleted chat %d", chat_id)

    def link_media(self, chat_id: int, media_map: dict[str, str]) -> int:
        """Set media_uri on messages whose attachment filename is in media_map."""
        if not media_map:
            return 0
        conn = self._connect()
        try:
            with conn:
                rows = conn.execute(
                    "SELECT id, content FROM messages WHERE chat_id = ? AND media_uri IS NULL",
                    (chat_id,),
                ).fetchall()
                updates = []
                for row in rows:
                    filename = extract_attachment_filename(row["content"])
                    if filename and filename in media_map:
                        updates.append((media_map[filename], row["id"]))
                conn.executemany("UPDATE messages SET media_uri = ? WHERE id = ?", updates)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to link media for chat {chat_id}: {e}") from e
        finally:
            conn.close()
        logger.info("Linked %d media files to chat %d", len(updates), chat_id)
        return len(updates)

    def set_sentiment_scores(self, scores: dict[int, float]) -> None:
        """Store sentiment scores computed outside this package."""
        conn = self._connect()
        try:
            with conn:
                conn.executemany(
                    "UPDATE messages SET sentiment_score = ? WHERE id = ?",
                    [(score, message_id) for message_id, score in scores.items()],
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to store sentiment scores: {e}") from e
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Chats and senders
    # ------------------------------------------------------------------

    def list_chats(self) -> list[Chat]:
        """All chats, most recently imported first."""
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM chats ORDER BY import_date DESC, id DESC"
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_chat(row) for row in rows]

    def get_chat(self, chat_id: int) -> Chat:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM chats WHERE id = ?", (chat_id,)).fetchone()
        finally:
            conn.close()
        if not row:
            raise ChatNotFoundError(f"Chat {chat_id} not found.")
        return self._row_to_chat(row)

    def get_chat_senders(self, chat_id: int) -> list[Sender]:
        """Distinct senders appearing in a chat, by name."""
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT DISTINCT s.id, s.name, s.display_name, s.color
                FROM senders s
                JOIN messages m ON m.sender_id = s.id
                WHERE m.chat_id = ?
                ORDER BY s.name
                """,
                (chat_id,),
            ).fetchall()
        finally:
            conn.close()
        return [
            Sender(id=r["id"], name=r["name"], display_name=r["display_name"], color=r["color"])
            for r in rows
        ]

    def count_messages(self, chat_id: int) -> int:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE chat_id = ?", (chat_id,)
            ).fetchone()
            return row[0] if row else 0
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Message reads
    # ------------------------------------------------------------------

    def get_messages(self, chat_id: int, limit: int = 50, offset: int = 0) -> list[PersistedMessage]:
        """One page of a chat in (timestamp, id) order."""
        return self._query_messages(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages m
            LEFT JOIN senders s ON s.id = m.sender_id
            WHERE m.chat_id = ?
            ORDER BY m.timestamp ASC, m.id ASC
            LIMIT ? OFFSET ?
            """,
            (chat_id, limit, offset),
        )

    def get_all_messages(self, chat_id: int) -> list[PersistedMessage]:
        return self.get_messages(chat_id, limit=-1)

    def get_message_neighborhood(
        self, chat_id: int, anchor_id: int, window_size: int = 50
    ) -> list[PersistedMessage]:
        """At most `window_size` messages around `anchor_id`, anchor included, by id."""
        if window_size <= 0:
            return []
        after_count = window_size // 2
        before_count = window_size - after_count
        before = self._query_messages(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages m
            LEFT JOIN senders s ON s.id = m.sender_id
            WHERE m.chat_id = ? AND m.id <= ?
            ORDER BY m.id DESC
            LIMIT ?
            """,
            (chat_id, anchor_id, before_count),
        )
        after = self._query_messages(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages m
            LEFT JOIN senders s ON s.id = m.sender_id
            WHERE m.chat_id = ? AND m.id > ?
            ORDER BY m.id ASC
            LIMIT ?
            """,
            (chat_id, anchor_id, after_count),
        )
        return sorted(list(reversed(before)) + after, key=lambda m: m.id)

    def get_media_messages(self, chat_id: int) -> list[PersistedMessage]:
        """Messages with a resolved media file, for gallery views."""
        return self._query_messages(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages m
            LEFT JOIN senders s ON s.id = m.sender_id
            WHERE m.chat_id = ? AND m.media_uri IS NOT NULL
            ORDER BY m.timestamp ASC, m.id ASC
            """,
            (chat_id,),
        )

    def search(self, query: str, limit: int = 50, chat_id: int | None = None) -> list[SearchHit]:
        """Full-text search; every term is a prefix match and all must hit.

        Queries FTS5 cannot parse, or with a term it would tokenize away,
        fall back to a substring scan.
        """
        terms = query.split()
        if not terms:
            return []

        chat_filter = "AND m.chat_id = ?" if chat_id is not None else ""
        chat_params = (chat_id,) if chat_id is not None else ()

        rows = None
        matched_by = "fts"
        conn = self._connect()
        try:
            if all(has_index_token(t) for t in terms):
                try:
                    rows = conn.execute(
                        f"""
                        SELECT {_MESSAGE_COLUMNS}, c.name AS chat_name
                        FROM messages_fts
                        JOIN messages m ON m.id = messages_fts.rowid
                        JOIN chats c ON c.id = m.chat_id
                        LEFT JOIN senders s ON s.id = m.sender_id
                        WHERE messages_fts MATCH ? {chat_filter}
                        ORDER BY bm25(messages_fts)
                        LIMIT ?
                        """,
                        (build_fts_query(query), *chat_params, limit),
                    ).fetchall()
                except sqlite3.OperationalError as e:
                    logger.warning("FTS query %r failed (%s), falling back to substring scan", query, e)
            else:
                logger.warning("Query %r has a term without indexable text, using substring scan", query)

            if rows is None:
                like_clauses = " AND ".join("m.content LIKE ? ESCAPE '\\'" for _ in terms)
                rows = conn.execute(
                    f"""
                    SELECT {_MESSAGE_COLUMNS}, c.name AS chat_name
                    FROM messages m
                    JOIN chats c ON c.id = m.chat_id
                    LEFT JOIN senders s ON s.id = m.sender_id
                    WHERE {like_clauses} {chat_filter}
                    ORDER BY m.timestamp DESC, m.id DESC
                    LIMIT ?
                    """,
                    (*(f"%{_escape_like(t)}%" for t in terms), *chat_params, limit),
                ).fetchall()
                matched_by = "substring"
        except sqlite3.Error as e:
            raise StorageError(f"Search failed: {e}") from e
        finally:
            conn.close()

        return [
            SearchHit(message=self._row_to_message(row), chat_name=row["chat_name"], matched_by=matched_by)
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Analytics (system messages excluded, local calendar)
    # ------------------------------------------------------------------

    def get_chat_stats(self, chat_id: int) -> ChatStats:
        conn = self._connect()
        try:
            row = conn.execute(
                f"""
                SELECT
                    COUNT(*) AS total,
                    COUNT(DISTINCT date({_LOCAL})) AS active_days,
                    MIN(m.timestamp) AS first_ts,
                    MAX(m.timestamp) AS last_ts
                FROM messages m
                WHERE m.chat_id = ? AND m.sender_id IS NOT NULL
                """,
                (chat_id,),
            ).fetchone()
        finally:
            conn.close()
        return ChatStats(
            total_messages=row["total"],
            active_days=row["active_days"],
            first_message=from_epoch_ms(row["first_ts"]) if row["first_ts"] is not None else None,
            last_message=from_epoch_ms(row["last_ts"]) if row["last_ts"] is not None else None,
        )

    def get_top_senders(self, chat_id: int, limit: int = 10) -> list[SenderCount]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT s.name AS sender_name, COUNT(*) AS count
                FROM messages m
                JOIN senders s ON s.id = m.sender_id
                WHERE m.chat_id = ?
                GROUP BY s.id
                ORDER BY count DESC, s.name ASC
                LIMIT ?
                """,
                (chat_id, limit),
            ).fetchall()
        finally:
            conn.close()
        return [SenderCount(sender_name=r["sender_name"], count=r["count"]) for r in rows]

    def get_usage_by_day_of_week(self, chat_id: int) -> list[DayCount]:
        counts = self._bucket_counts(chat_id, "%w")
        return [DayCount(day=name, count=counts.get(i, 0)) for i, name in enumerate(DAY_NAMES)]

    def get_usage_by_hour_of_day(self, chat_id: int) -> list[HourCount]:
        counts = self._bucket_counts(chat_id, "%H")
        return [HourCount(hour=f"{h:02d}", count=counts.get(h, 0)) for h in range(24)]

    def _bucket_counts(self, chat_id: int, fmt: str) -> dict[int, int]:
        conn = self._connect()
        try:
            rows = conn.execute(
                f"""
                SELECT CAST(strftime(?, {_LOCAL}) AS INTEGER) AS bucket, COUNT(*) AS count
                FROM messages m
                WHERE m.chat_id = ? AND m.sender_id IS NOT NULL
                GROUP BY bucket
                """,
                (fmt, chat_id),
            ).fetchall()
        finally:
            conn.close()
        return {r["bucket"]: r["count"] for r in rows}

    # ------------------------------------------------------------------
    # Memory highlights
    # ------------------------------------------------------------------

    def get_random_highlights(
        self, chat_id: int, limit: int = 5, min_length: int = 40
    ) -> list[PersistedMessage]:
        return self._query_messages(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages m
            LEFT JOIN senders s ON s.id = m.sender_id
            WHERE m.chat_id = ?
              AND m.sender_id IS NOT NULL
              AND m.type = 'text'
              AND length(m.content) >= ?
            ORDER BY RANDOM()
            LIMIT ?
            """,
            (chat_id, min_length, limit),
        )

    def get_on_this_day(
        self, chat_id: int, today: date | None = None, limit: int = 20
    ) -> list[PersistedMessage]:
        """Messages from today's month and day in earlier (or later) years."""
        today = today or datetime.now(tz.tzlocal()).date()
        return self._same_period(chat_id, "%m-%d", today.strftime("%m-%d"), today.year, limit)

    def get_on_this_week(
        self, chat_id: int, today: date | None = None, limit: int = 20
    ) -> list[PersistedMessage]:
        today = today or datetime.now(tz.tzlocal()).date()
        return self._same_period(chat_id, "%W", today.strftime("%W"), today.year, limit)

    def get_memories(
        self, chat_id: int, today: date | None = None, limit: int = 20
    ) -> tuple[str, list[PersistedMessage]]:
        """("day", matches), or ("week", matches) when today has none."""
        matches = self.get_on_this_day(chat_id, today, limit)
        if matches:
            return "day", matches
        return "week", self.get_on_this_week(chat_id, today, limit)

    def _same_period(
        self, chat_id: int, fmt: str, value: str, year: int, limit: int
    ) -> list[PersistedMessage]:
        return self._query_messages(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages m
            LEFT JOIN senders s ON s.id = m.sender_id
            WHERE m.chat_id = ?
              AND m.sender_id IS NOT NULL
              AND strftime(?, {_LOCAL}) = ?
              AND CAST(strftime('%Y', {_LOCAL}) AS INTEGER) != ?
            ORDER BY m.timestamp ASC, m.id ASC
            LIMIT ?
            """,
            (chat_id, fmt, value, year, limit),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _query_messages(self, sql: str, params: tuple) -> list[PersistedMessage]:
        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Message query failed: {e}") from e
        finally:
            conn.close()
        return [self._row_to_message(row) for row in rows]

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> PersistedMessage:
        return PersistedMessage(
            id=row["id"],
            chat_id=row["chat_id"],
            sender_id=row["sender_id"],
            timestamp=from_epoch_ms(row["timestamp"]),
            content=row["content"] or "",
            type=row["type"],
            is_media_omitted=bool(row["is_media_omitted"]),
            media_uri=row["media_uri"],
            reply_to_id=row["reply_to_id"],
            sentiment_score=row["sentiment_score"],
            raw_text=row["raw_text"],
            sender_name=row["sender_name"],
        )

    @staticmethod
    def _row_to_chat(row: sqlite3.Row) -> Chat:
        return Chat(
            id=row["id"],
            name=row["name"],
            source_platform=row["source_platform"],
            import_date=from_epoch_ms(row["import_date"]),
            file_path=row["file_path"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        )
