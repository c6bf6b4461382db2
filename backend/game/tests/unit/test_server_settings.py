import pytest
from pydantic import ValidationError

from game.server.settings import GameServerSettings


class TestGameServerSettings:
    def test_defaults(self, monkeypatch):
        for name in (
            "MAHJONG_DATABASE_PATH",
            "MAHJONG_ROUND_RESTART_DELAY_SECONDS",
            "MAHJONG_SEND_ATTEMPTS",
            "MAHJONG_CORS_ORIGINS",
        ):
            monkeypatch.delenv(name, raising=False)
        settings = GameServerSettings()
        assert settings.database_path == "backend/data/mahjong.db"
        assert settings.round_restart_delay_seconds == 5.0
        assert settings.send_attempts == 3
        assert settings.max_message_bytes == 16 * 1024
        assert settings.cors_origins == ["http://localhost:3000"]

    def test_reads_prefixed_env(self, monkeypatch):
        monkeypatch.setenv("MAHJONG_DATABASE_PATH", "custom/game.db")
        monkeypatch.setenv("MAHJONG_ROUND_RESTART_DELAY_SECONDS", "1.5")
        settings = GameServerSettings()
        assert settings.database_path == "custom/game.db"
        assert settings.round_restart_delay_seconds == 1.5

    def test_cors_origins_json_array(self, monkeypatch):
        monkeypatch.setenv("MAHJONG_CORS_ORIGINS", '["http://a.com","http://b.com"]')
        assert GameServerSettings().cors_origins == ["http://a.com", "http://b.com"]

    def test_cors_origins_csv(self, monkeypatch):
        monkeypatch.setenv("MAHJONG_CORS_ORIGINS", "http://a.com,http://b.com")
        assert GameServerSettings().cors_origins == ["http://a.com", "http://b.com"]

    def test_cors_origins_empty_rejected(self, monkeypatch):
        monkeypatch.setenv("MAHJONG_CORS_ORIGINS", "")
        with pytest.raises(ValidationError, match="cors_origins"):
            GameServerSettings()

    def test_negative_restart_delay_rejected(self):
        with pytest.raises(ValidationError, match="round_restart_delay_seconds"):
            GameServerSettings(round_restart_delay_seconds=-1)

    def test_zero_send_attempts_rejected(self):
        with pytest.raises(ValidationError, match="send_attempts"):
            GameServerSettings(send_attempts=0)

    def test_log_dir_empty_rejected(self):
        with pytest.raises(ValidationError, match="log_dir"):
            GameServerSettings(log_dir="")
