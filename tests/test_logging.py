"""Tests for structlog / stdlib logging setup."""

from __future__ import annotations

import logging

import pytest
import structlog

from magick_builder.core.logging import setup_logging

_LOGGERS = ("", "magick_builder", "httpx", "httpcore")


@pytest.fixture(autouse=True)
def _restore_logging(monkeypatch):
    monkeypatch.delenv("MAGICK_BUILD_LOG_LEVEL", raising=False)
    monkeypatch.delenv("MAGICK_BUILD_LOG_FORMAT", raising=False)
    saved = {name: logging.getLogger(name).level for name in _LOGGERS}
    root_handlers = logging.getLogger().handlers[:]
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers[:] = root_handlers
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


class TestSetupLogging:
    def test_default_level_info(self):
        setup_logging()
        assert logging.getLogger("magick_builder").level == logging.INFO
        assert logging.getLogger().level == logging.INFO

    def test_verbose_enables_debug(self):
        setup_logging(verbose=True)
        assert logging.getLogger("magick_builder").level == logging.DEBUG
        assert logging.getLogger("magick_builder.fetch").isEnabledFor(logging.DEBUG)

    def test_env_level_overrides_verbose(self, monkeypatch):
        monkeypatch.setenv("MAGICK_BUILD_LOG_LEVEL", "warning")
        setup_logging(verbose=True)
        assert logging.getLogger("magick_builder").level == logging.WARNING

    def test_http_libraries_quieted(self):
        setup_logging(verbose=True)
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_json_format(self, monkeypatch):
        monkeypatch.setenv("MAGICK_BUILD_LOG_FORMAT", "json")
        setup_logging()
        handler = logging.getLogger().handlers[-1]
        assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(handler.formatter.processors[-1], structlog.processors.JSONRenderer)
