import logging

import pytest
from pydantic import ValidationError

from tidemark.settings import LOG_FORMAT, Settings, configure_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("BASE_URL", "CHAT_PATH", "TIMEOUT", "PACE", "LOG_LEVEL", "LOG_FILE"):
            monkeypatch.delenv(f"TIDEMARK_{name}", raising=False)
        settings = Settings()
        assert settings.chat_url == "http://localhost:7452/chat"
        assert settings.timeout == 300.0
        assert settings.pace == 0.01

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TIDEMARK_BASE_URL", "http://chat.local:9000/")
        monkeypatch.setenv("TIDEMARK_TIMEOUT", "12.5")
        settings = Settings()
        assert settings.chat_url == "http://chat.local:9000/chat"
        assert settings.timeout == 12.5

    def test_prefix_is_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("tidemark_chat_path", "/api/chat")
        assert Settings().chat_path == "/api/chat"

    def test_keyword_arguments_win(self, monkeypatch):
        monkeypatch.setenv("TIDEMARK_PACE", "0.5")
        assert Settings(pace=0).pace == 0

    def test_invalid_environment_value_rejected(self, monkeypatch):
        monkeypatch.setenv("TIDEMARK_TIMEOUT", "soon")
        with pytest.raises(ValidationError):
            Settings()


class TestConfigureLogging:
    def test_configures_root_logger(self, restore_root_logger):
        configure_logging(Settings(log_level="debug"))

        assert restore_root_logger.level == logging.DEBUG
        handler = restore_root_logger.handlers[0]
        assert handler.formatter._fmt == LOG_FORMAT

    def test_log_file(self, tmp_path, restore_root_logger):
        path = tmp_path / "tidemark.log"
        configure_logging(Settings(log_file=str(path)))
        logging.getLogger("tidemark.test").info("written")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert "tidemark.test:INFO:written" in path.read_text()
