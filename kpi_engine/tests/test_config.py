"""
Tests for settings loading and logging setup.
"""

import logging

import pytest

from kpi_engine.core.config import Settings, get_settings
from kpi_engine.core.log_config import configure_logging


class TestSettings:

    def test_defaults(self, settings):
        assert settings.knowledge_base_path is None
        assert settings.reload_timeout_seconds == 5.0
        assert settings.parallel_workers == 3
        assert settings.confidence_sample_saturation == 500

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("KPI_ENGINE_PARALLEL_WORKERS", "6")
        monkeypatch.setenv("KPI_ENGINE_RELOAD_TIMEOUT_SECONDS", "0.5")
        settings = Settings()
        assert settings.parallel_workers == 6
        assert settings.reload_timeout_seconds == 0.5

    def test_rejects_non_positive_timeout(self, monkeypatch):
        monkeypatch.setenv("KPI_ENGINE_RELOAD_TIMEOUT_SECONDS", "0")
        with pytest.raises(ValueError):
            Settings()

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestConfigureLogging:

    def test_applies_level_and_format(self, monkeypatch):
        captured = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

        configure_logging(Settings(log_level="debug", log_format="%(message)s"))

        assert captured == {"level": logging.DEBUG, "format": "%(message)s"}

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        captured = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

        configure_logging(Settings(log_level="chatty"))

        assert captured["level"] == logging.INFO
