"""Tests for the YAML settings loader."""
import pytest
from pydantic import ValidationError

from genielearn.config import AppSettings, ChatSettings, get_config, load_settings, reset_config


def test_defaults_when_files_missing(tmp_path):
    settings = load_settings(tmp_path / "missing.yaml", tmp_path / "missing-secrets.yaml")
    assert settings.server.port == 8000
    assert settings.chat.send_timeout_seconds == 5.0
    assert settings.client.history_cap == 5000
    assert settings.client.poll_interval_seconds == 5.0
    assert settings.auth.cookie_name == "genielearn_session"


def test_settings_and_secrets_are_merged(tmp_path):
    settings_file = tmp_path / "genielearn.settings.yaml"
    secrets_file = tmp_path / "genielearn.secrets.yaml"
    settings_file.write_text(
        "server:\n"
        "  port: 9100\n"
        "database:\n"
        "  path: ':memory:'\n"
        "chat:\n"
        "  send_timeout_seconds: 1.5\n"
    )
    secrets_file.write_text("session:\n  token_pepper: pepper-from-file\n")

    settings = load_settings(settings_file, secrets_file)

    assert settings.server.port == 9100
    assert settings.database.path == ":memory:"
    assert settings.chat.send_timeout_seconds == 1.5
    assert settings.secrets.session.token_pepper == "pepper-from-file"


def test_environment_overrides_paths(tmp_path, monkeypatch):
    settings_file = tmp_path / "custom.yaml"
    settings_file.write_text("logging:\n  level: debug\n")
    monkeypatch.setenv("GENIELEARN_SETTINGS", str(settings_file))
    monkeypatch.setenv("GENIELEARN_SECRETS", str(tmp_path / "none.yaml"))

    reset_config()
    try:
        assert get_config().logging.level == "debug"
        assert get_config() is get_config()
    finally:
        reset_config()


def test_empty_yaml_file(tmp_path):
    settings_file = tmp_path / "empty.yaml"
    settings_file.write_text("")
    assert load_settings(settings_file, tmp_path / "none.yaml") == AppSettings()


def test_send_timeout_must_be_positive():
    with pytest.raises(ValidationError):
        ChatSettings(send_timeout_seconds=0)
