"""
Unit tests for configuration and logging setup.
"""

import logging

import pytest
import structlog

from capacityhub import service as service_module
from capacityhub.platform.config import Settings, get_settings
from capacityhub.platform.logging import configure_logging, get_logger
from capacityhub.storage import InMemoryAllocationStore


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SYNC_BATCH_SIZE", raising=False)
        settings = Settings(_env_file=None)

        assert settings.DEFAULT_WEEKLY_CAPACITY == 40
        assert settings.DEFAULT_NON_PROJECT_HOURS == 8
        assert settings.SYNC_BATCH_SIZE == 10
        assert settings.SYNC_MAX_ATTEMPTS == 3
        assert settings.CAPACITY_ERROR_TOLERANCE == 0.2

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SYNC_BATCH_SIZE", "25")
        monkeypatch.setenv("STORE_API_URL", "http://dashboard.internal")

        settings = Settings(_env_file=None)

        assert settings.SYNC_BATCH_SIZE == 25
        assert settings.STORE_API_URL == "http://dashboard.internal"

    def test_settings_are_cached(self):
        assert get_settings() is get_settings()


class TestLogging:
    @pytest.fixture(autouse=True)
    def reset_structlog(self):
        yield
        structlog.reset_defaults()

    def test_records_carry_app_context(self, capsys):
        configure_logging(force=True)
        logger = get_logger("capacityhub.test")
        logger.info("edit_applied", allocation_id=1, week_key="2025-03-03")

        out = capsys.readouterr().out
        assert "edit_applied" in out
        assert "CapacityHub" in out
        assert "2025-03-03" in out

    def test_stdlib_loggers_share_the_renderer(self, capsys):
        configure_logging(force=True)
        logging.getLogger("capacityhub.engine.test").warning("grid recomputed")

        out = capsys.readouterr().out
        assert "grid recomputed" in out
        assert "CapacityHub" in out

    def test_debug_is_filtered_at_info_level(self, capsys):
        configure_logging(force=True)
        get_logger("capacityhub.test").debug("noisy_detail")

        assert "noisy_detail" not in capsys.readouterr().out

    def test_service_configures_logging(self, monkeypatch):
        calls = []
        monkeypatch.setattr(service_module, "configure_logging", lambda: calls.append(True))

        service_module.CapacityService(InMemoryAllocationStore())

        assert calls == [True]
