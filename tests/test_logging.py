"""Tests for logging setup."""

import logging

import structlog

from cache_purge.utils.logging import setup_logging

from conftest import make_settings


class TestSetupLogging:
    def test_configures_root_logger(self):
        setup_logging(make_settings(log_level="WARNING", log_format="console"))

        assert logging.root.level == logging.WARNING
        assert len(logging.root.handlers) == 1
        assert logging.getLogger("httpx").level == logging.WARNING
        assert structlog.is_configured()

    def test_json_renderer(self):
        setup_logging(make_settings(log_format="json"))

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
