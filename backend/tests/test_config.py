"""Tests for settings/secrets loading."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from studysync.config import AppConfig, RoomSettings, get_config, load_config, set_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("JWT_SECRET", "STUDYSYNC_SETTINGS", "STUDYSYNC_SECRETS"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_when_files_missing(tmp_path):
    cfg = load_config(
        settings_path=tmp_path / "missing.settings.yaml",
        secrets_path=tmp_path / "missing.secrets.yaml",
    )
    assert cfg.server.port == 3000
    assert cfg.database.path == "studysync.duckdb"
    assert cfg.auth.algorithm == "HS256"
    assert cfg.auth.token_query_param == "token"
    assert cfg.rooms.max_message_length == 10000
    assert cfg.rooms.history_max_page_size == 100
    assert cfg.rooms.outbound_queue_size == 256
    assert cfg.secrets.jwt.secret_key == "change-me-in-production"


def test_settings_and_secrets_are_merged(tmp_path):
    settings_file = tmp_path / "studysync.settings.yaml"
    settings_file.write_text(
        "server:\n"
        "  port: 4000\n"
        "  allowed_origins:\n"
        "    - https://study.example.com\n"
        "rooms:\n"
        "  max_message_length: 500\n"
        "logging:\n"
        "  level: debug\n",
        encoding="utf-8",
    )
    secrets_file = tmp_path / "studysync.secrets.yaml"
    secrets_file.write_text("jwt:\n  secret_key: from-file\n", encoding="utf-8")

    cfg = load_config(settings_path=settings_file, secrets_path=secrets_file)

    assert cfg.server.port == 4000
    assert cfg.server.allowed_origins == ["https://study.example.com"]
    assert cfg.rooms.max_message_length == 500
    assert cfg.logging.level == "debug"
    assert cfg.secrets.jwt.secret_key == "from-file"


def test_env_paths_are_used(tmp_path, monkeypatch):
    settings_file = tmp_path / "custom.yaml"
    settings_file.write_text("server:\n  port: 5000\n", encoding="utf-8")
    monkeypatch.setenv("STUDYSYNC_SETTINGS", str(settings_file))
    monkeypatch.setenv("STUDYSYNC_SECRETS", str(tmp_path / "none.yaml"))

    assert load_config().server.port == 5000


def test_jwt_secret_env_overrides_file(tmp_path, monkeypatch):
    secrets_file = tmp_path / "studysync.secrets.yaml"
    secrets_file.write_text("jwt:\n  secret_key: from-file\n", encoding="utf-8")
    monkeypatch.setenv("JWT_SECRET", "from-env")

    cfg = load_config(settings_path=tmp_path / "none.yaml", secrets_path=secrets_file)
    assert cfg.secrets.jwt.secret_key == "from-env"


def test_relative_db_path_resolves_against_settings_dir(tmp_path):
    settings_file = tmp_path / "studysync.settings.yaml"
    settings_file.write_text("database:\n  path: data/chat.duckdb\n", encoding="utf-8")

    cfg = load_config(settings_path=settings_file, secrets_path=tmp_path / "none.yaml")
    assert Path(cfg.database.path) == tmp_path.resolve() / "data" / "chat.duckdb"


def test_absolute_and_memory_db_paths_unchanged(tmp_path):
    absolute = tmp_path / "abs" / "chat.duckdb"
    settings_file = tmp_path / "studysync.settings.yaml"
    settings_file.write_text(f"database:\n  path: {absolute}\n", encoding="utf-8")
    cfg = load_config(settings_path=settings_file, secrets_path=tmp_path / "none.yaml")
    assert Path(cfg.database.path) == absolute

    settings_file.write_text('database:\n  path: ":memory:"\n', encoding="utf-8")
    cfg = load_config(settings_path=settings_file, secrets_path=tmp_path / "none.yaml")
    assert cfg.database.path == ":memory:"


@pytest.mark.parametrize("field", [
    "max_message_length", "outbound_queue_size", "history_page_size", "history_max_page_size",
])
def test_room_limits_must_be_positive(field):
    with pytest.raises(ValidationError):
        RoomSettings(**{field: 0})


def test_set_config_replaces_cached_config(test_config):
    assert get_config() is test_config

    replacement = AppConfig()
    set_config(replacement)
    assert get_config() is replacement
