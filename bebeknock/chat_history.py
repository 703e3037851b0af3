"""Encrypted storage of chat turns and their summaries."""
from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

from .crypto import DecryptionError, MessageCipher
from .db import Database, from_db_timestamp, to_db_timestamp, utc_now
from .schemas import ConversationTurn

logger = logging.getLogger(__name__)


def _row_to_turn(row: sqlite3.Row) -> ConversationTurn:
    return ConversationTurn(
        id=row["id"],
        child_id=row["child_id"],
        user_id=row["user_id"],
        message=row["message"],
        reply=row["reply"] or "",
        summary=row["summary"],
        is_shared=bool(row["is_shared"]),
        shared_by=row["shared_by"],
        shared_at=from_db_timestamp(row["shared_at"]),
        created_at=from_db_timestamp(row["created_at"]),
    )


class ChatHistoryStore:
    """Turns are capped per child; the oldest one is dropped to make room."""

    def __init__(self, db: Database, cipher: MessageCipher, *, limit: int = 20) -> None:
        self.db = db
        self.cipher = cipher
        self.limit = limit

    def record_user_message(self, child_id: int, user_id: int, message: str) -> int:
        with self.db.connection() as conn:
            count = conn.execute(
                "SELECT COUNT(*) FROM chat_messages WHERE child_id = ?", (child_id,)
            ).fetchone()[0]
            overflow = count - self.limit + 1
            if overflow > 0:
                conn.execute(
                    """
                    DELETE FROM chat_messages WHERE id IN (
                        SELECT id FROM chat_messages WHERE child_id = ?
                        ORDER BY created_at ASC, id ASC LIMIT ?
                    )
                    """,
                    (child_id, overflow),
                )
            cursor = conn.execute(
                """
                INSERT INTO chat_messages (child_id, user_id, message, reply, created_at)
                VALUES (?, ?, ?, '', ?)
                """,
                (child_id, user_id, self.cipher.encrypt(message), to_db_timestamp(utc_now())),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def save_reply(self, turn_id: int, reply: str) -> None:
        with self.db.connection() as conn:
            conn.execute(
                "UPDATE chat_messages SET reply = ? WHERE id = ?",
                (self.cipher.encrypt(reply), turn_id),
            )
            conn.commit()

    def save_summary(self, turn_id: int, summary: str) -> None:
        with self.db.connection() as conn:
            conn.execute(
                "UPDATE chat_messages SET summary = ? WHERE id = ?",
                (self.cipher.encrypt(summary), turn_id),
            )
            conn.commit()

    def get_turn(self, turn_id: int) -> Optional[ConversationTurn]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM chat_messages WHERE id = ?", (turn_id,)).fetchone()
        return _row_to_turn(row) if row else None

    def set_shared(self, turn_id: int, shared_by: int, is_shared: bool) -> Optional[ConversationTurn]:
        shared_at = to_db_timestamp(utc_now()) if is_shared else None
        with self.db.connection() as conn:
            conn.execute(
                "UPDATE chat_messages SET is_shared = ?, shared_by = ?, shared_at = ? WHERE id = ?",
                (1 if is_shared else 0, shared_by if is_shared else None, shared_at, turn_id),
            )
            conn.commit()
        return self.get_turn(turn_id)

    def _visible_rows(self, child_id: int, user_id: int, limit: int, *, with_summary: bool) -> List[sqlite3.Row]:
        summary_clause = "AND summary IS NOT NULL AND summary != ''" if with_summary else ""
        with self.db.connection() as conn:
            return conn.execute(
                f"""
                SELECT * FROM chat_messages
                WHERE child_id = ? AND (user_id = ? OR is_shared = 1) {summary_clause}
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (child_id, user_id, limit),
            ).fetchall()

    def recent_summaries(self, child_id: int, user_id: int, limit: int = 3) -> List[str]:
        """Newest first; unreadable summaries are skipped."""
        summaries: List[str] = []
        for row in self._visible_rows(child_id, user_id, limit, with_summary=True):
            try:
                summaries.append(self.cipher.decrypt(row["summary"]))
            except DecryptionError:
                logger.warning("skipping undecryptable summary", extra={"turn_id": row["id"], "child_id": child_id})
        return summaries

    def visible_history(self, child_id: int, user_id: int, limit: Optional[int] = None) -> List[dict]:
        rows = self._visible_rows(child_id, user_id, limit or self.limit, with_summary=False)
        history: List[dict] = []
        for row in reversed(rows):
            turn = _row_to_turn(row)
            try:
                message = self.cipher.decrypt(turn.message)
                reply = self.cipher.decrypt(turn.reply) if turn.reply else ""
            except DecryptionError:
                logger.warning("skipping undecryptable turn", extra={"turn_id": turn.id, "child_id": child_id})
                continue
            history.append(
                {
                    "id": turn.id,
                    "user_id": turn.user_id,
                    "message": message,
                    "reply": reply,
                    "is_shared": turn.is_shared,
                    "is_mine": turn.user_id == user_id,
                    "created_at": turn.created_at,
                }
            )
        return history
