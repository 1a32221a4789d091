"""
Tests for logging infrastructure.

Verifies logger configuration and file output.
"""

import logging
from unittest.mock import patch

import pytest

import dictaflow.utils.logger as logger_module
from dictaflow.utils.logger import ROOT_LOGGER_NAME, get_logger, shutdown_logging


@pytest.fixture
def fresh_logging(tmp_path):
    """Re-initialize logging into tmp_path, restoring the default setup afterwards."""
    shutdown_logging()
    with patch("dictaflow.utils.logger.get_log_dir", return_value=tmp_path):
        yield tmp_path
        shutdown_logging()


class TestLoggerConfiguration:
    """Tests for logger setup and configuration."""

    def test_get_logger_returns_logger(self):
        assert isinstance(get_logger("dictaflow.test"), logging.Logger)

    def test_root_logger_singleton(self):
        assert get_logger(ROOT_LOGGER_NAME) is get_logger(ROOT_LOGGER_NAME)

    def test_module_loggers_are_children(self):
        logger = get_logger("dictaflow.core.session.coordinator")
        assert logger.name == "dictaflow.core.session.coordinator"
        assert logger.parent.name.startswith(ROOT_LOGGER_NAME)

    def test_src_prefix_normalized(self):
        assert get_logger("src.dictaflow.core").name == "dictaflow.core"

    def test_logger_writes_to_file(self, fresh_logging):
        get_logger("dictaflow.tests").info("Test message")

        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()

        log_file = fresh_logging / "app.log"
        assert log_file.exists()
        content = log_file.read_text(encoding="utf-8")
        assert "Test message" in content
        assert "INFO" in content
        assert "dictaflow.tests" in content

    def test_shutdown_closes_handlers(self, fresh_logging):
        get_logger()
        assert logging.getLogger(ROOT_LOGGER_NAME).handlers

        shutdown_logging()

        assert logging.getLogger(ROOT_LOGGER_NAME).handlers == []
        assert logger_module._logger_instance is None
