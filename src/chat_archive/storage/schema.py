"""SQLite schema for the message store and its full-text index."""

from __future__ import annotations

from chat_archive.parser.models import MESSAGE_TYPES, PLATFORMS

SCHEMA_VERSION = 1

_TYPE_LIST = ", ".join(f"'{t}'" for t in MESSAGE_TYPES)
_PLATFORM_LIST = ", ".join(f"'{p}'" for p in PLATFORMS)

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS chats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    source_platform TEXT NOT NULL CHECK (source_platform IN ({_PLATFORM_LIST})),
    import_date INTEGER NOT NULL,
    file_path TEXT,
    metadata TEXT
);

CREATE TABLE IF NOT EXISTS senders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    display_name TEXT,
    color TEXT
);

CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id INTEGER NOT NULL REFERENCES chats(id) ON DELETE CASCADE,
    sender_id INTEGER REFERENCES senders(id),
    timestamp INTEGER NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL CHECK (type IN ({_TYPE_LIST})),
    is_media_omitted INTEGER NOT NULL DEFAULT 0,
    media_uri TEXT,
    reply_to_id INTEGER REFERENCES messages(id) ON DELETE SET NULL,
    sentiment_score REAL,
    raw_text TEXT
);

CREATE INDEX IF NOT EXISTS idx_messages_chat_timestamp ON messages(chat_id, timestamp, id);
CREATE INDEX IF NOT EXISTS idx_messages_sender ON messages(sender_id);
CREATE INDEX IF NOT EXISTS idx_messages_type ON messages(type);

CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5(
    content,
    content='messages',
    content_rowid='id'
);

CREATE TRIGGER IF NOT EXISTS messages_ai AFTER INSERT ON messages BEGIN
    INSERT INTO messages_fts(rowid, content) VALUES (new.id, new.content);
END;

CREATE TRIGGER IF NOT EXISTS messages_ad AFTER DELETE ON messages BEGIN
    INSERT INTO messages_fts(messages_fts, rowid, content)
    VALUES ('delete', old.id, old.content);
END;

CREATE TRIGGER IF NOT EXISTS messages_au AFTER UPDATE OF content ON messages BEGIN
    INSERT INTO messages_fts(messages_fts, rowid, content)
    VALUES ('delete', old.id, old.content);
    INSERT INTO messages_fts(rowid, content) VALUES (new.id, new.content);
END;

PRAGMA user_version = {SCHEMA_VERSION};
"""
