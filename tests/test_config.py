import json

import pytest

from bebeknock.config import load_config


def test_env_overrides_file_values(tmp_path, monkeypatch) -> None:
    config_file = tmp_path / "config.json"
    config_file.write_text(
        json.dumps(
            {
                "session_secret": "file-session-secret",
                "chat_encryption_key": "file-encryption-key",
                "data_collection_days": 7,
            }
        )
    )
    monkeypatch.setenv("BEBEKNOCK_DATA_COLLECTION_DAYS", "14")
    monkeypatch.setenv("BEBEKNOCK_CORS_ORIGINS", "https://a.example, https://b.example")

    config = load_config(config_file)
    assert config.session_secret == "file-session-secret"
    assert config.data_collection_days == 14
    assert config.cors_origins == ["https://a.example", "https://b.example"]
    assert config.uses_upstash is False
    assert str(config.tzinfo) == "Asia/Seoul"


def test_missing_secrets_point_to_example(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("BEBEKNOCK_SESSION_SECRET", raising=False)
    monkeypatch.delenv("BEBEKNOCK_CHAT_ENCRYPTION_KEY", raising=False)
    with pytest.raises(FileNotFoundError) as excinfo:
        load_config(tmp_path / "config.json")
    assert "config.example.json" in str(excinfo.value)
