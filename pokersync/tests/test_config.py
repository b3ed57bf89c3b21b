"""
Tests for settings, logging setup and the CLI.
"""

import logging

import pytest

from ..app_logging import HANDLER_NAME, configure_logging
from ..cli import main
from ..config import Settings
from ..engine_core.state import CARD_VALUES


class TestSettings:
    """Tests for Settings.from_env."""

    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.environment == "development"
        assert settings.allowed_origins == ["*"]
        assert settings.card_values == CARD_VALUES
        assert settings.session_max_age_seconds == 3600
        assert settings.channel_queue_size == 256
        assert settings.log_level == "INFO"

    def test_overrides(self):
        settings = Settings.from_env({
            "POKERSYNC_ENV": "production",
            "ALLOWED_ORIGINS": "https://a.example, https://b.example",
            "POKERSYNC_CARD_VALUES": "XS,S,M,L,XL",
            "POKERSYNC_SESSION_MAX_AGE": "60",
            "POKERSYNC_CHANNEL_QUEUE_SIZE": "8",
            "POKERSYNC_LOG_LEVEL": "debug",
        })

        assert settings.environment == "production"
        assert settings.allowed_origins == ["https://a.example", "https://b.example"]
        assert settings.card_values == ("XS", "S", "M", "L", "XL")
        assert settings.session_max_age_seconds == 60
        assert settings.channel_queue_size == 8
        assert settings.log_level == "DEBUG"

    def test_blank_deck_falls_back(self):
        assert Settings.from_env({"POKERSYNC_CARD_VALUES": " , "}).card_values == CARD_VALUES


class TestLogging:
    """Tests for configure_logging."""

    def test_single_handler(self):
        configure_logging("DEBUG")
        configure_logging("WARNING")

        logger = logging.getLogger("pokersync")
        ours = [h for h in logger.handlers if h.get_name() == HANDLER_NAME]
        assert len(ours) == 1
        assert logger.level == logging.WARNING


class TestCLI:
    """Tests for the command-line entry point."""

    def test_cards(self, capsys, monkeypatch):
        monkeypatch.setenv("POKERSYNC_CARD_VALUES", "1,2,3")
        main(["cards"])
        assert capsys.readouterr().out.strip() == "1 2 3"

    def test_no_command(self, capsys):
        with pytest.raises(SystemExit):
            main([])
