"""Application configuration utilities."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

ENV_PREFIX = "BEBEKNOCK_"


class AppConfig(BaseModel):
    """Strongly typed configuration loaded from config.json and the environment."""

    openai_api_key: str = Field(default="")
    openai_model: str = Field(default="gpt-4o-mini")
    database_path: str = Field(default="./data/bebeknock.db")
    timezone: str = Field(default="Asia/Seoul")
    session_secret: str = Field(..., min_length=8)
    chat_encryption_key: str = Field(..., min_length=8)
    upstash_redis_url: Optional[str] = None
    upstash_redis_token: Optional[str] = None
    context_cache_ttl_seconds: int = Field(default=24 * 60 * 60)
    freshness_window_minutes: int = Field(default=10)
    data_collection_days: int = Field(default=7)
    summary_context_limit: int = Field(default=3)
    chat_history_limit: int = Field(default=20)
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )
    log_level: str = Field(default="INFO")

    @property
    def resolved_database_path(self) -> Path:
        """Return the absolute path for the SQLite database file."""
        path = Path(self.database_path)
        if path.is_absolute():
            return path
        return (Path(__file__).resolve().parents[1] / path).resolve()

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def uses_upstash(self) -> bool:
        return bool(self.upstash_redis_url and self.upstash_redis_token)


def _config_path() -> Path:
    return Path(__file__).resolve().parents[1] / "config.json"


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for name in AppConfig.model_fields:
        value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if value is None:
            continue
        if name == "cors_origins":
            overrides[name] = [item.strip() for item in value.split(",") if item.strip()]
        else:
            overrides[name] = value
    return overrides


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load configuration from config.json plus BEBEKNOCK_* overrides."""

    config_file = path or _config_path()
    contents: Dict[str, Any] = {}
    if config_file.exists():
        contents = json.loads(config_file.read_text())
    contents.update(_env_overrides())

    missing = [key for key in ("session_secret", "chat_encryption_key") if not contents.get(key)]
    if missing:
        example = config_file.with_name("config.example.json")
        raise FileNotFoundError(
            "Missing configuration values "
            f"({', '.join(missing)}). Copy config.example.json to {config_file} "
            f"or set {ENV_PREFIX}<FIELD> environment variables. Example file: {example}"
        )
    return AppConfig(**contents)
