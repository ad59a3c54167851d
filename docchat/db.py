"""SQLite persistence for doc-chat turns."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional


@dataclass(frozen=True)
class ChatRecord:
    """One persisted turn: what the user asked and what the model answered."""

    session_id: str
    timestamp: str
    user_text: str
    user_id: str
    file_name: Optional[str]
    model: str
    ai_response: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _now() -> str:
    return datetime.now().isoformat(timespec="milliseconds")


class ChatStore:
    """Append-only store of ChatRecords keyed by ``session_id``.

    Every call opens its own connection, so the store can be shared by
    concurrent requests running in the thread pool.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    @contextmanager
    def get_conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=30)
        try:
            conn.row_factory = sqlite3.Row
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        db_file = Path(self.db_path)
        db_file.parent.mkdir(parents=True, exist_ok=True)
        with self.get_conn() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chats (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    user_text TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    file_name TEXT,
                    model TEXT NOT NULL,
                    ai_response TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_chats_session_id ON chats (session_id)"
            )

    def append(
        self,
        session_id: str,
        user_text: str,
        user_id: str,
        file_name: Optional[str],
        model: str,
        ai_response: str,
    ) -> ChatRecord:
        record = ChatRecord(
            session_id=session_id,
            timestamp=_now(),
            user_text=user_text,
            user_id=user_id,
            file_name=file_name,
            model=model,
            ai_response=ai_response,
        )
        with self.get_conn() as conn:
            conn.execute(
                """
                INSERT INTO chats (
                    session_id,
                    timestamp,
                    user_text,
                    user_id,
                    file_name,
                    model,
                    ai_response
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.session_id,
                    record.timestamp,
                    record.user_text,
                    record.user_id,
                    record.file_name,
                    record.model,
                    record.ai_response,
                ),
            )
        return record

    def latest_for_session(self, session_id: str) -> Optional[ChatRecord]:
        """Return the most recent record of ``session_id``, or None."""
        with self.get_conn() as conn:
            cur = conn.execute(
                """
                SELECT session_id, timestamp, user_text, user_id, file_name, model, ai_response
                FROM chats
                WHERE session_id = ?
                ORDER BY id DESC
                LIMIT 1
                """,
                (session_id,),
            )
            row = cur.fetchone()
        if not row:
            return None
        return ChatRecord(**dict(row))

    def list_session(self, session_id: str) -> List[ChatRecord]:
        with self.get_conn() as conn:
            cur = conn.execute(
                """
                SELECT session_id, timestamp, user_text, user_id, file_name, model, ai_response
                FROM chats
                WHERE session_id = ?
                ORDER BY id ASC
                """,
                (session_id,),
            )
            rows = cur.fetchall()
        return [ChatRecord(**dict(r)) for r in rows]

    def list_sessions(
        self,
        user_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Summaries of stored sessions, most recently active first."""
        where = ""
        params: List[Any] = []
        if user_id:
            where = "WHERE c.user_id = ?"
            params.append(user_id)
        params.extend([limit, offset])
        with self.get_conn() as conn:
            cur = conn.execute(
                f"""
                SELECT
                    c.session_id,
                    MIN(c.user_id) AS user_id,
                    COUNT(*) AS turns,
                    MAX(c.timestamp) AS last_timestamp,
                    (
                        SELECT f.user_text
                        FROM chats f
                        WHERE f.session_id = c.session_id
                        ORDER BY f.id ASC
                        LIMIT 1
                    ) AS first_user_text
                FROM chats c
                {where}
                GROUP BY c.session_id
                ORDER BY MAX(c.id) DESC
                LIMIT ? OFFSET ?
                """,
                params,
            )
            rows = cur.fetchall()
        return [dict(r) for r in rows]
