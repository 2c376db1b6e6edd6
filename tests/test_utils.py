"""Tests for the database URL and logging setup."""

import logging

import pytest

from funcbase.settings import DatabaseDriver, settings
from funcbase.utils.db_manager import async_database_url
from funcbase.utils.logger import InterceptHandler, logger, setup_logging


class TestAsyncDatabaseUrl:
    """Tests for async_database_url."""

    def test_sqlite(self, monkeypatch):
        monkeypatch.setattr(settings, "database_driver", DatabaseDriver.SQLITE)
        monkeypatch.setattr(settings, "database_name", "shop")
        assert async_database_url() == "sqlite+aiosqlite:///shop.db"

    @pytest.mark.parametrize(
        "driver", [DatabaseDriver.POSTGRESQL, DatabaseDriver.POSTGRESQL_ASYNC]
    )
    def test_postgres_uses_asyncpg(self, monkeypatch, driver):
        monkeypatch.setattr(settings, "database_driver", driver)
        monkeypatch.setattr(settings, "database_name", "shop")
        monkeypatch.setattr(settings, "database_host", "db")
        monkeypatch.setattr(settings, "database_port", 5433)
        monkeypatch.setattr(settings, "database_username", "app")
        monkeypatch.setattr(settings, "database_password", "pw")

        assert async_database_url() == "postgresql+asyncpg://app:pw@db:5433/shop"


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_file_sink_from_settings(self, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "log_to_file", True)
        monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))
        try:
            setup_logging()
            logger.warning("written to the file sink")
        finally:
            monkeypatch.undo()
            setup_logging()

        assert "written to the file sink" in (tmp_path / "logs" / "funcbase.log").read_text()

    def test_standard_library_loggers_forwarded(self):
        handlers = logging.getLogger("uvicorn.error").handlers
        assert [type(handler) for handler in handlers] == [InterceptHandler]
