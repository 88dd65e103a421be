"""Unit tests for the logging configuration module."""

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import MagicMock, patch

import pytest
import structlog

from wa_summarizer.logging import get_logger, setup_logging


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """Reset root logger and structlog state around each test."""
    original_handlers = logging.root.handlers[:]
    original_level = logging.root.level
    logging.root.handlers.clear()
    logging.root.setLevel(logging.WARNING)
    yield
    for handler in logging.root.handlers:
        handler.close()
    logging.root.handlers.clear()
    logging.root.handlers.extend(original_handlers)
    logging.root.setLevel(original_level)
    structlog.reset_defaults()


def _mock_settings(level="INFO", development=False, to_file=False, path=None):
    settings = MagicMock()
    settings.log_level = level
    settings.is_development = development
    settings.log_to_file = to_file
    settings.log_file_path = str(path) if path else "logs/test.log"
    settings.log_file_max_bytes = 1024
    settings.log_file_backup_count = 2
    return settings


class TestSetupLogging:
    """Tests for setup_logging function."""

    @pytest.mark.parametrize(
        ("level", "expected"),
        [("DEBUG", logging.DEBUG), ("warning", logging.WARNING), ("NONEXISTENT", logging.INFO)],
    )
    def test_basic_config_level(self, level, expected):
        with patch("wa_summarizer.logging.get_settings", return_value=_mock_settings(level)):
            with patch("wa_summarizer.logging.logging.basicConfig") as mock_basic:
                setup_logging()

        mock_basic.assert_called_once_with(format="%(message)s", level=expected, handlers=[])

    def test_console_handler_has_structlog_formatter(self):
        with patch("wa_summarizer.logging.get_settings", return_value=_mock_settings()):
            setup_logging()

        console_handlers = [h for h in logging.root.handlers if type(h) is logging.StreamHandler]
        assert len(console_handlers) == 1
        assert isinstance(console_handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_reduces_third_party_noise(self):
        with patch("wa_summarizer.logging.get_settings", return_value=_mock_settings("DEBUG")):
            setup_logging()

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_configures_structlog(self):
        with patch("wa_summarizer.logging.get_settings", return_value=_mock_settings()):
            with patch("wa_summarizer.logging.structlog.configure") as mock_configure:
                setup_logging()

        kwargs = mock_configure.call_args.kwargs
        assert kwargs["context_class"] is dict
        assert kwargs["cache_logger_on_first_use"] is True
        assert isinstance(kwargs["logger_factory"], structlog.stdlib.LoggerFactory)

    def test_file_handler_added_when_enabled(self, tmp_path):
        log_path = tmp_path / "nested" / "app.log"
        settings = _mock_settings(to_file=True, path=log_path)
        with patch("wa_summarizer.logging.get_settings", return_value=settings):
            setup_logging()

        file_handlers = [h for h in logging.root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 1024
        assert file_handlers[0].backupCount == 2
        assert log_path.parent.is_dir()

    def test_no_file_handler_by_default(self):
        with patch("wa_summarizer.logging.get_settings", return_value=_mock_settings()):
            setup_logging()

        assert not [h for h in logging.root.handlers if isinstance(h, RotatingFileHandler)]

    def test_file_output_is_json(self, tmp_path):
        log_path = tmp_path / "app.log"
        settings = _mock_settings(to_file=True, path=log_path)
        with patch("wa_summarizer.logging.get_settings", return_value=settings):
            setup_logging()

        get_logger("wa_summarizer.test").info("summary_reported", generation=3)
        for handler in logging.root.handlers:
            handler.flush()

        line = log_path.read_text().strip().splitlines()[-1]
        assert '"event": "summary_reported"' in line
        assert '"generation": 3' in line


class TestGetLogger:
    """Tests for get_logger."""

    def test_returns_bound_logger(self):
        log = get_logger("wa_summarizer.test")
        assert hasattr(log, "info")
        assert hasattr(log, "warning")
