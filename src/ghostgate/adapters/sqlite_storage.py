"""SQLite storage adapter.

Implements the core ItemStorePort and MessageStorePort using a simple SQLite
database.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Iterable, List, Optional, Tuple

from ghostgate.core.models import MediaKind, MessageId, StoredMessage


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the item and message store ports."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - items: opaque payloads keyed by (collection_id, key)
        - messages: local mirror of observed messages
        """

        with self._connect() as conn:
            # items is a generic key/value table. The shadow store owns the
            # key layout and payload encoding; this adapter only moves bytes.
            # Fields:
            # - collection_id: small integer scoping the key space
            # - key: fixed-width big-endian key; BLOB compare keeps order
            # - payload: encoded record
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS items (
                    collection_id INTEGER NOT NULL,
                    key BLOB NOT NULL,
                    payload BLOB NOT NULL,
                    PRIMARY KEY (collection_id, key)
                )
                """
            )
            # messages mirrors what the client has seen so deletions and edits
            # can be resolved after the server forgets them.
            # Fields:
            # - peer_id, message_id: message identity (PRIMARY KEY)
            # - timestamp: original send time, unix seconds
            # - author_id: sender, NULL for anonymous channel posts
            # - text: message text or caption
            # - media: JSON list of media kind tags
            # - attributes: JSON list of local marker tags
            # - is_read, content_consumed: local-only state flags
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    peer_id INTEGER NOT NULL,
                    message_id INTEGER NOT NULL,
                    timestamp INTEGER NOT NULL,
                    author_id INTEGER,
                    text TEXT NOT NULL,
                    media TEXT NOT NULL,
                    attributes TEXT NOT NULL,
                    is_read INTEGER NOT NULL DEFAULT 0,
                    content_consumed INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (peer_id, message_id)
                )
                """
            )

    def put_item(self, collection_id: int, key: bytes, payload: bytes) -> None:
        """Upsert one payload; writing the same key twice overwrites it."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO items (collection_id, key, payload)
                VALUES (?, ?, ?)
                ON CONFLICT(collection_id, key) DO UPDATE SET payload = excluded.payload
                """,
                (collection_id, sqlite3.Binary(key), sqlite3.Binary(payload)),
            )

    def get_item(self, collection_id: int, key: bytes) -> Optional[bytes]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT payload FROM items WHERE collection_id = ? AND key = ?",
                (collection_id, sqlite3.Binary(key)),
            ).fetchone()
        return bytes(row["payload"]) if row else None

    def list_items(self, collection_id: int, prefix: bytes = b"") -> List[Tuple[bytes, bytes]]:
        """Return (key, payload) pairs in key order, optionally by prefix."""

        with self._connect() as conn:
            if prefix:
                rows = conn.execute(
                    """
                    SELECT key, payload FROM items
                    WHERE collection_id = ? AND substr(key, 1, ?) = ?
                    ORDER BY key
                    """,
                    (collection_id, len(prefix), sqlite3.Binary(prefix)),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT key, payload FROM items WHERE collection_id = ? ORDER BY key",
                    (collection_id,),
                ).fetchall()
        return [(bytes(row["key"]), bytes(row["payload"])) for row in rows]

    def get_message(self, message_id: MessageId) -> Optional[StoredMessage]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM messages WHERE peer_id = ? AND message_id = ?",
                (message_id.peer_id, message_id.id),
            ).fetchone()
        if row is None:
            return None
        return StoredMessage(
            message_id=MessageId(row["peer_id"], row["message_id"]),
            timestamp=int(row["timestamp"]),
            author_id=row["author_id"],
            text=row["text"],
            media=tuple(MediaKind(kind) for kind in json.loads(row["media"])),
            attributes=tuple(json.loads(row["attributes"])),
            is_read=bool(row["is_read"]),
            content_consumed=bool(row["content_consumed"]),
        )

    def save_message(self, message: StoredMessage) -> None:
        """Upsert a message, keeping local-only flags and markers."""

        existing = self.get_message(message.message_id)
        attributes = list(message.attributes)
        is_read = message.is_read
        content_consumed = message.content_consumed
        if existing is not None:
            # A fresh copy from the server must not wipe local state.
            attributes += [tag for tag in existing.attributes if tag not in attributes]
            is_read = is_read or existing.is_read
            content_consumed = content_consumed or existing.content_consumed

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO messages (
                    peer_id,
                    message_id,
                    timestamp,
                    author_id,
                    text,
                    media,
                    attributes,
                    is_read,
                    content_consumed
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(peer_id, message_id) DO UPDATE SET
                    timestamp = excluded.timestamp,
                    author_id = excluded.author_id,
                    text = excluded.text,
                    media = excluded.media,
                    attributes = excluded.attributes,
                    is_read = excluded.is_read,
                    content_consumed = excluded.content_consumed
                """,
                (
                    message.message_id.peer_id,
                    message.message_id.id,
                    message.timestamp,
                    message.author_id,
                    message.text,
                    json.dumps([kind.value for kind in message.media]),
                    json.dumps(attributes),
                    int(is_read),
                    int(content_consumed),
                ),
            )

    def add_attribute(self, message_id: MessageId, tag: str) -> None:
        message = self.get_message(message_id)
        if message is None or tag in message.attributes:
            return
        with self._connect() as conn:
            conn.execute(
                "UPDATE messages SET attributes = ? WHERE peer_id = ? AND message_id = ?",
                (json.dumps(list(message.attributes) + [tag]), message_id.peer_id, message_id.id),
            )

    def mark_read(self, message_ids: Iterable[MessageId]) -> None:
        with self._connect() as conn:
            conn.executemany(
                "UPDATE messages SET is_read = 1 WHERE peer_id = ? AND message_id = ?",
                [(message_id.peer_id, message_id.id) for message_id in message_ids],
            )

    def mark_content_consumed(self, message_id: MessageId) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE messages SET content_consumed = 1 WHERE peer_id = ? AND message_id = ?",
                (message_id.peer_id, message_id.id),
            )

    def list_messages(self, peer_id: int, limit: int = 50) -> List[StoredMessage]:
        """Return the newest mirrored messages of a chat, newest first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT peer_id, message_id FROM messages
                WHERE peer_id = ?
                ORDER BY message_id DESC
                LIMIT ?
                """,
                (peer_id, limit),
            ).fetchall()
        messages = [self.get_message(MessageId(row["peer_id"], row["message_id"])) for row in rows]
        return [message for message in messages if message is not None]
