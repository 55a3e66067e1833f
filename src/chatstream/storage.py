"""SQLite cache of conversations, one JSON document per message."""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from .config import MAX_TITLE_CHARS
from .models import Artifact, Conversation, Message, MessageRole, normalize_title

logger = logging.getLogger(__name__)


def _derive_title(messages: list[Message]) -> str:
    for msg in messages:
        if msg.role == MessageRole.USER and msg.content.strip():
            text = " ".join(msg.content.split())
            if len(text) > MAX_TITLE_CHARS:
                text = text[: MAX_TITLE_CHARS - 3].rstrip() + "..."
            return text
    return "New chat"


class ConversationStore:
    """SQLite-backed cache for conversations and their messages.

    Messages are stored in the same camelCase JSON shape the chat API uses,
    so the cache can be read by other clients of that format.
    """

    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                create_time REAL,
                update_time REAL,
                cached_at REAL NOT NULL,
                message_count INTEGER
            );

            CREATE TABLE IF NOT EXISTS messages (
                conversation_id TEXT NOT NULL,
                message_index INTEGER NOT NULL,
                id TEXT NOT NULL,
                role TEXT NOT NULL,
                payload TEXT NOT NULL,
                PRIMARY KEY (conversation_id, message_index),
                FOREIGN KEY (conversation_id) REFERENCES conversations(id)
            );
        """)
        self.conn.commit()

    def conversation_exists(self, conversation_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM conversations WHERE id = ?", (conversation_id,)
        ).fetchone()
        return row is not None

    def save_conversation(
        self,
        conversation_id: str,
        messages: list[Message],
        title: str | None = None,
    ):
        """Insert or replace a conversation and all of its messages."""
        now = time.time()
        existing = self.conn.execute(
            "SELECT title, create_time FROM conversations WHERE id = ?", (conversation_id,)
        ).fetchone()

        if title is None:
            title = existing["title"] if existing else _derive_title(messages)
        create_time = existing["create_time"] if existing else now

        self.conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
        self.conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))

        self.conn.execute(
            """INSERT INTO conversations (id, title, create_time, update_time,
               cached_at, message_count)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (conversation_id, title, create_time, now, now, len(messages)),
        )

        for idx, msg in enumerate(messages):
            self.conn.execute(
                """INSERT INTO messages (conversation_id, message_index, id, role, payload)
                   VALUES (?, ?, ?, ?, ?)""",
                (conversation_id, idx, msg.id, msg.role.value, json.dumps(msg.to_json_dict())),
            )

        self.conn.commit()

    def get_messages(
        self, conversation_id: str, max_age: float | None = None
    ) -> list[Message] | None:
        """Cached messages, or None when missing or older than `max_age` seconds.

        Rows that fail to decode are skipped.
        """
        row = self.conn.execute(
            "SELECT cached_at FROM conversations WHERE id = ?", (conversation_id,)
        ).fetchone()
        if not row:
            return None
        if max_age is not None and time.time() - row["cached_at"] > max_age:
            logger.debug("Cache for conversation %s expired", conversation_id)
            return None

        rows = self.conn.execute(
            "SELECT id, payload FROM messages WHERE conversation_id = ? ORDER BY message_index",
            (conversation_id,),
        ).fetchall()

        messages: list[Message] = []
        for r in rows:
            try:
                messages.append(Message.model_validate_json(r["payload"]))
            except ValidationError:
                logger.warning(
                    "Skipping corrupt cached message %s in conversation %s",
                    r["id"],
                    conversation_id,
                )
        return messages

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        row = self.conn.execute(
            """SELECT id, title, create_time, update_time, message_count
               FROM conversations WHERE id = ?""",
            (conversation_id,),
        ).fetchone()
        return Conversation(**dict(row)) if row else None

    def list_conversations(
        self,
        limit: int = 20,
        offset: int = 0,
        keyword: str | None = None,
    ) -> list[Conversation]:
        """Most recently updated first, optionally filtered by title or content."""
        if keyword:
            pattern = f"%{keyword}%"
            rows = self.conn.execute(
                """SELECT DISTINCT c.id, c.title, c.create_time, c.update_time, c.message_count
                   FROM conversations c
                   LEFT JOIN messages m ON m.conversation_id = c.id
                   WHERE c.title LIKE ? OR m.payload LIKE ?
                   ORDER BY c.update_time DESC
                   LIMIT ? OFFSET ?""",
                (pattern, pattern, limit, offset),
            ).fetchall()
        else:
            rows = self.conn.execute(
                """SELECT id, title, create_time, update_time, message_count
                   FROM conversations
                   ORDER BY update_time DESC
                   LIMIT ? OFFSET ?""",
                (limit, offset),
            ).fetchall()

        return [Conversation(**dict(r)) for r in rows]

    def list_artifacts(self, conversation_id: str | None = None) -> list[dict]:
        """Artifacts across cached conversations, with their owning message."""
        if conversation_id is not None:
            ids = [conversation_id]
        else:
            ids = [r["id"] for r in self.conn.execute(
                "SELECT id FROM conversations ORDER BY update_time DESC"
            ).fetchall()]

        results: list[dict] = []
        for conv_id in ids:
            for msg in self.get_messages(conv_id) or []:
                for artifact in msg.artifacts:
                    results.append(
                        {
                            "conversation_id": conv_id,
                            "message_id": msg.id,
                            "artifact": artifact,
                        }
                    )
        return results

    def get_artifact(self, conversation_id: str, title: str) -> Artifact | None:
        key = normalize_title(title)
        for entry in self.list_artifacts(conversation_id):
            if entry["artifact"].key == key:
                return entry["artifact"]
        return None

    def delete_conversation(self, conversation_id: str):
        self.conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
        self.conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        self.conn.commit()

    def get_stats(self) -> dict:
        """Get overall cache statistics."""
        conv_count = self.conn.execute("SELECT COUNT(*) FROM conversations").fetchone()[0]
        msg_count = self.conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]

        date_range = self.conn.execute(
            "SELECT MIN(create_time), MAX(update_time) FROM conversations"
        ).fetchone()

        return {
            "total_conversations": conv_count,
            "total_messages": msg_count,
            "total_artifacts": len(self.list_artifacts()),
            "date_range_start": _format_ts(date_range[0]),
            "date_range_end": _format_ts(date_range[1]),
            "avg_messages_per_conversation": round(msg_count / conv_count, 1) if conv_count else 0,
        }

    def close(self):
        self.conn.close()


def _format_ts(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")
