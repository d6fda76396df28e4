"""Unit tests for logging configuration."""
from __future__ import annotations

import logging

from vas_liquidator.logging_setup import configure_logging


class TestConfigureLogging:
    def test_sets_info_level(self) -> None:
        configure_logging("INFO")
        assert logging.getLogger().level == logging.INFO

    def test_sets_debug_level(self) -> None:
        configure_logging("DEBUG")
        assert logging.getLogger().level == logging.DEBUG

    def test_lowercase_level(self) -> None:
        configure_logging("warning")
        assert logging.getLogger().level == logging.WARNING

    def test_silences_client_libraries(self) -> None:
        configure_logging("DEBUG")
        assert logging.getLogger("aiohttp").level == logging.WARNING
        assert logging.getLogger("web3").level == logging.WARNING
        assert logging.getLogger("sqlalchemy").level == logging.WARNING

    def test_invalid_level_defaults_to_info(self) -> None:
        configure_logging("NONEXISTENT")
        assert logging.getLogger().level == logging.INFO
