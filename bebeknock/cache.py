"""Key/value cache for assembled chat context.

Upstash Redis is used through its REST endpoint when configured; otherwise
entries live in the local SQLite file with an explicit expiry column.
"""
from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

import httpx

from .db import Database, to_db_timestamp, utc_now


class CacheError(RuntimeError):
    """The cache backend could not serve a request."""


async def _describe_response(resp: httpx.Response) -> str:
    return resp.text or "<empty response>"


@dataclass
class UpstashCache:
    base_url: str
    token: str
    timeout: float = 5.0
    transport: Optional[httpx.AsyncBaseTransport] = None

    async def command(self, *args: Any) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(
                    self.base_url.rstrip("/"),
                    json=[str(arg) for arg in args],
                    headers={"Authorization": f"Bearer {self.token}"},
                )
        except httpx.HTTPError as exc:
            raise CacheError(f"Upstash {args[0]} failed: {exc}") from exc
        if resp.status_code >= 400:
            detail = await _describe_response(resp)
            raise CacheError(f"Upstash {args[0]} failed: status={resp.status_code}, body={detail}")
        try:
            data = resp.json() if resp.content else {}
        except ValueError as exc:
            raise CacheError(f"Upstash {args[0]} returned invalid JSON") from exc
        if "error" in data:
            raise CacheError(f"Upstash {args[0]} failed: {data['error']}")
        return data.get("result")

    async def get(self, key: str) -> Optional[str]:
        return await self.command("GET", key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.command("SET", key, value, "EX", ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.command("DEL", key)


class SQLiteCache:
    def __init__(self, db: Database) -> None:
        self.db = db

    def _get(self, key: str) -> Optional[str]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT value, expires_at FROM cache_entries WHERE key = ?", (key,)
            ).fetchone()
            if not row:
                return None
            if row["expires_at"] <= to_db_timestamp(utc_now()):
                conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
                conn.commit()
                return None
            return row["value"]

    def _set(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at = to_db_timestamp(utc_now() + timedelta(seconds=ttl_seconds))
        with self.db.connection() as conn:
            conn.execute(
                """
                INSERT INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, expires_at = excluded.expires_at
                """,
                (key, value, expires_at),
            )
            conn.commit()

    def _delete(self, key: str) -> None:
        with self.db.connection() as conn:
            conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            conn.commit()

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise CacheError(f"SQLite cache failed: {exc}") from exc

    async def get(self, key: str) -> Optional[str]:
        return await self._run(self._get, key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._run(self._set, key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._run(self._delete, key)


def context_cache_key(child_id: int) -> str:
    return f"baby:{child_id}:recent"
