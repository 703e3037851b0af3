"""SQLite helpers."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    """Serialize a datetime so lexical order matches chronological order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class Database:
    """Owns the SQLite file; one connection per unit of work."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT,
                    email TEXT UNIQUE,
                    created_at TEXT NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS families (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT,
                    created_at TEXT NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS family_members (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    family_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    relation TEXT,
                    role TEXT DEFAULT 'MEMBER',
                    joined_at TEXT NOT NULL,
                    UNIQUE(family_id, user_id),
                    FOREIGN KEY (family_id) REFERENCES families(id),
                    FOREIGN KEY (user_id) REFERENCES users(id)
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS children (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    family_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    gender TEXT,
                    birth_date TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (family_id) REFERENCES families(id)
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS activities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    child_id INTEGER NOT NULL,
                    user_id INTEGER,
                    type TEXT NOT NULL,
                    start_time TEXT NOT NULL,
                    end_time TEXT,
                    note TEXT,
                    details_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (child_id) REFERENCES children(id),
                    FOREIGN KEY (user_id) REFERENCES users(id)
                );
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS activities_child_type_start
                ON activities (child_id, type, start_time)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS measurements (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    child_id INTEGER NOT NULL,
                    measured_at TEXT NOT NULL,
                    weight_kg REAL,
                    height_cm REAL,
                    note TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (child_id) REFERENCES children(id)
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    child_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    message TEXT NOT NULL,
                    reply TEXT NOT NULL DEFAULT '',
                    summary TEXT,
                    is_shared INTEGER DEFAULT 0,
                    shared_by INTEGER,
                    shared_at TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (child_id) REFERENCES children(id),
                    FOREIGN KEY (user_id) REFERENCES users(id)
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                );
                """
            )
            conn.commit()

    def create_user(self, *, name: str, email: Optional[str] = None) -> int:
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO users (name, email, created_at) VALUES (?, ?, ?)",
                (name, email, to_db_timestamp(utc_now())),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def create_family(self, *, name: str = "우리 가족") -> int:
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO families (name, created_at) VALUES (?, ?)",
                (name, to_db_timestamp(utc_now())),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def add_family_member(
        self,
        *,
        family_id: int,
        user_id: int,
        relation: Optional[str] = None,
        role: str = "MEMBER",
    ) -> None:
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO family_members (family_id, user_id, relation, role, joined_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (family_id, user_id, relation, role, to_db_timestamp(utc_now())),
            )
            conn.commit()

    def create_child(
        self,
        *,
        family_id: int,
        name: str,
        birth_date: datetime,
        gender: Optional[str] = None,
    ) -> int:
        with self.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO children (family_id, name, gender, birth_date, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (family_id, name, gender, to_db_timestamp(birth_date), to_db_timestamp(utc_now())),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def get_user(self, user_id: int) -> Optional[dict]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _row_to_dict(row) if row else None

    def get_child(self, child_id: int) -> Optional[dict]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM children WHERE id = ?", (child_id,)).fetchone()
        return _row_to_dict(row) if row else None

    def list_memberships(self, user_id: int) -> List[dict]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT family_id, user_id, relation, role FROM family_members WHERE user_id = ?",
                (user_id,),
            ).fetchall()
        return [_row_to_dict(row) for row in rows]


def _row_to_dict(row: sqlite3.Row) -> dict:
    return {key: row[key] for key in row.keys()}
