"""Tests for settings loading."""
import pytest
from pydantic import ValidationError

from app.config import AppConfig, get_config, load_config, reset_config


class TestDefaults:
    def test_missing_file_yields_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config == AppConfig()
        assert config.server.port == 3001
        assert config.rooms.max_participants == 50
        assert config.sync.drift_threshold_seconds == 1.0
        assert config.sync.suppression_cooldown_seconds == 0.5
        assert config.reconnect.max_delay_seconds == 30.0

    def test_empty_file_yields_defaults(self, tmp_path):
        path = tmp_path / "watchsync.settings.yaml"
        path.write_text("")
        assert load_config(path) == AppConfig()


class TestLoading:
    def test_values_are_read(self, tmp_path):
        path = tmp_path / "watchsync.settings.yaml"
        path.write_text(
            "server:\n"
            "  port: 4000\n"
            "  allowed_origins: ['https://example.com']\n"
            "logging:\n"
            "  level: DEBUG\n"
            "rooms:\n"
            "  max_participants: 0\n"
            "sync:\n"
            "  drift_threshold_seconds: 2.5\n"
        )
        config = load_config(path)
        assert config.server.port == 4000
        assert config.server.allowed_origins == ["https://example.com"]
        assert config.logging.level == "debug"
        assert config.rooms.max_participants == 0
        assert config.sync.drift_threshold_seconds == 2.5
        # Untouched sections keep defaults.
        assert config.reconnect.initial_delay_seconds == 1.0

    def test_env_var_locates_file(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("server:\n  port: 5555\n")
        monkeypatch.setenv("WATCHSYNC_SETTINGS", str(path))
        assert load_config().server.port == 5555

    def test_get_config_is_cached_until_reset(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("server:\n  port: 6000\n")
        monkeypatch.setenv("WATCHSYNC_SETTINGS", str(path))

        first = get_config()
        assert first.server.port == 6000
        path.write_text("server:\n  port: 7000\n")
        assert get_config() is first

        reset_config()
        assert get_config().server.port == 7000


class TestValidation:
    def test_unknown_log_level(self, tmp_path):
        path = tmp_path / "watchsync.settings.yaml"
        path.write_text("logging:\n  level: chatty\n")
        with pytest.raises(ValidationError):
            load_config(path)

    def test_negative_capacity(self, tmp_path):
        path = tmp_path / "watchsync.settings.yaml"
        path.write_text("rooms:\n  max_participants: -1\n")
        with pytest.raises(ValidationError):
            load_config(path)
