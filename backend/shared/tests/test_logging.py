import json
import logging
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from shared.logging import _serialize_enums, setup_logging


@pytest.fixture(autouse=True)
def _cleanup_root_logger():
    """Close and remove all handlers from the root logger after each test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


@pytest.fixture(autouse=True)
def _allow_file_logging():
    """Disable the _is_test guard so logging tests can create real file handlers."""
    with patch("shared.logging._is_test", return_value=False):
        yield


class TestSetupLogging:
    def test_configures_stdout_handler(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()
        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_configures_file_handler_in_log_dir(self, tmp_path):
        log_dir = tmp_path / "game"
        setup_logging(log_dir=log_dir)
        root = logging.getLogger()

        assert len(root.handlers) == 2
        file_handler = root.handlers[1]
        assert isinstance(file_handler, logging.FileHandler)
        assert Path(file_handler.baseFilename).parent == log_dir

    def test_log_file_name_is_prefixed_and_timestamped(self, tmp_path):
        fixed_time = datetime(2025, 3, 15, 10, 30, 45, tzinfo=UTC)
        with patch("shared.logging.datetime") as mock_dt:
            mock_dt.now.return_value = fixed_time
            log_path = setup_logging(log_dir=tmp_path / "game")

        assert log_path is not None
        assert log_path.name == "mahjong-2025-03-15_10-30-45.log"

    def test_returns_none_without_log_dir(self):
        assert setup_logging() is None

    def test_skips_file_under_pytest(self, tmp_path):
        with patch("shared.logging._is_test", return_value=True):
            assert setup_logging(log_dir=tmp_path / "game") is None
        assert not (tmp_path / "game").exists()

    def test_writes_bound_context_to_file(self, tmp_path):
        log_path = setup_logging(log_dir=tmp_path / "game")

        with structlog.contextvars.bound_contextvars(connection_id="c1", action="DRAW_TILE"):
            structlog.get_logger("test.context").info("drew a tile")

        assert log_path is not None
        content = log_path.read_text()
        assert "drew a tile" in content
        assert "c1" in content
        assert "DRAW_TILE" in content

    def test_json_mode_writes_json_lines(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        log_path = setup_logging(log_dir=tmp_path / "game")

        structlog.get_logger("test.json").info("json line", game_id="g1")

        assert log_path is not None
        record = json.loads(log_path.read_text().strip().splitlines()[-1])
        assert record["event"] == "json line"
        assert record["game_id"] == "g1"

    def test_clears_existing_handlers_on_repeated_calls(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_custom_log_level(self):
        setup_logging(level=logging.WARNING)
        assert logging.getLogger().level == logging.WARNING

    def test_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")
        setup_logging()
        assert logging.getLogger().level == logging.ERROR

    def test_quiets_access_logs(self):
        setup_logging(level=logging.DEBUG)
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_invalid_log_format_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="Invalid LOG_FORMAT"):
            setup_logging()

    def test_invalid_log_level_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            setup_logging()


class TestSerializeEnums:
    def test_replaces_enum_values(self):
        class Phase(Enum):
            ROUND_ENDED = "ROUND_ENDED"

        event_dict = {"event": "phase change", "phase": Phase.ROUND_ENDED, "round": 2}
        assert _serialize_enums(None, "info", event_dict) == {
            "event": "phase change",
            "phase": "ROUND_ENDED",
            "round": 2,
        }
