from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from fastapi.testclient import TestClient

from bebeknock.auth import issue_session_token
from bebeknock.cache import CacheError
from bebeknock.config import AppConfig
from bebeknock.main import create_app
from bebeknock.schemas import ActivityEvent

SESSION_SECRET = "test-session-secret"


def make_config(tmp_path: Path, **overrides) -> AppConfig:
    values = {
        "database_path": str(tmp_path / "bebeknock.db"),
        "session_secret": SESSION_SECRET,
        "chat_encryption_key": "test-chat-encryption-key",
        "timezone": "Asia/Seoul",
    }
    values.update(overrides)
    return AppConfig(**values)


class FakeChatModel:
    def __init__(
        self,
        chunks: Optional[List[str]] = None,
        *,
        error: Optional[Exception] = None,
        summary: str = "엄마가 밤중 수유 간격을 물었고 3시간 간격을 안내함.",
        summary_error: Optional[Exception] = None,
    ) -> None:
        self.chunks = chunks if chunks is not None else ["안녕하세요. ", "오늘 수유는 3회예요."]
        self.error = error
        self.summary = summary
        self.summary_error = summary_error
        self.stream_calls: List[Dict] = []
        self.summary_calls: List[Dict] = []

    async def stream_reply(self, system_prompt: str, history: List[Dict[str, str]], message: str):
        self.stream_calls.append({"system_prompt": system_prompt, "history": history, "message": message})
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    async def summarize_conversation(self, user_message: str, reply: str) -> str:
        self.summary_calls.append({"message": user_message, "reply": reply})
        if self.summary_error is not None:
            raise self.summary_error
        return self.summary


class FakeCache:
    def __init__(self, *, broken: bool = False) -> None:
        self.entries: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.broken = broken
        self.reads = 0
        self.deleted: List[str] = []

    async def get(self, key: str) -> Optional[str]:
        self.reads += 1
        if self.broken:
            raise CacheError("cache offline")
        return self.entries.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if self.broken:
            raise CacheError("cache offline")
        self.entries[key] = value
        self.ttls[key] = ttl_seconds

    async def delete(self, key: str) -> None:
        self.deleted.append(key)
        if self.broken:
            raise CacheError("cache offline")
        self.entries.pop(key, None)


@dataclass
class Seeded:
    user_id: int
    other_user_id: int
    family_id: int
    other_family_id: int
    child_id: int
    other_child_id: int
    token: str
    other_token: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    @property
    def other_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.other_token}"}


def seed_families(db, *, birth_date: Optional[datetime] = None) -> Seeded:
    """Two families with one caregiver and one child each."""
    birth = birth_date or datetime(2024, 1, 10, tzinfo=timezone.utc)
    user_id = db.create_user(name="지은", email="mom@example.com")
    other_user_id = db.create_user(name="민수", email="other@example.com")
    family_id = db.create_family(name="지은네")
    other_family_id = db.create_family(name="민수네")
    db.add_family_member(family_id=family_id, user_id=user_id, relation="mother", role="OWNER")
    db.add_family_member(family_id=other_family_id, user_id=other_user_id, relation="father", role="OWNER")
    child_id = db.create_child(family_id=family_id, name="하린", birth_date=birth, gender="female")
    other_child_id = db.create_child(family_id=other_family_id, name="도윤", birth_date=birth, gender="male")
    return Seeded(
        user_id=user_id,
        other_user_id=other_user_id,
        family_id=family_id,
        other_family_id=other_family_id,
        child_id=child_id,
        other_child_id=other_child_id,
        token=issue_session_token(user_id, "지은", SESSION_SECRET),
        other_token=issue_session_token(other_user_id, "민수", SESSION_SECRET),
    )


def build_client(tmp_path: Path, *, chat_model=None, cache=None, **config_overrides):
    app = create_app(
        make_config(tmp_path, **config_overrides),
        chat_model=chat_model or FakeChatModel(),
        cache=cache if cache is not None else FakeCache(),
    )
    client = TestClient(app)
    seeded = seed_families(app.state.db)
    return client, app, seeded


def make_event(activity_type, start: datetime, details, *, end: Optional[datetime] = None, note=None, event_id=1):
    return ActivityEvent(
        id=event_id,
        child_id=1,
        type=activity_type,
        start_time=start,
        end_time=end,
        note=note,
        details=details,
        created_at=start,
        updated_at=start,
    )
