"""
Tests for configuration, engine setup and logging configuration.
"""

import logging

from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool

from tutorsync.config import Settings
from tutorsync.database import _safe_url, create_db_engine, get_connect_args, init_db
from tutorsync.logging_config import configure_logging


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.WAIT_FOR_INDEX_ON_UPDATE is True
        assert settings.MEILISEARCH_INDEX_PREFIX == ""

    def test_cors_origins_list(self):
        settings = Settings(CORS_ORIGINS="http://a.test, http://b.test")
        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MEILISEARCH_INDEX_PREFIX", "staging")
        monkeypatch.setenv("WAIT_FOR_INDEX_ON_UPDATE", "false")
        settings = Settings()
        assert settings.MEILISEARCH_INDEX_PREFIX == "staging"
        assert settings.WAIT_FOR_INDEX_ON_UPDATE is False


class TestEngine:
    def test_sqlite_connect_args(self):
        assert get_connect_args("sqlite:///:memory:") == {"check_same_thread": False}
        assert get_connect_args("postgresql://u:p@db/tutorsync") == {}

    def test_safe_url_hides_password(self):
        assert "secret" not in _safe_url("postgresql://user:secret@db:5432/tutorsync")

    def test_sqlite_uses_static_pool(self):
        engine = create_db_engine(Settings(DATABASE_URL="sqlite:///:memory:"))
        assert isinstance(engine.pool, StaticPool)
        engine.dispose()

    def test_init_db_creates_tables(self):
        engine = create_db_engine(Settings(DATABASE_URL="sqlite:///:memory:"))
        init_db(engine)
        init_db(engine)
        assert set(inspect(engine).get_table_names()) == {"users", "orgs", "matches", "meetings"}
        engine.dispose()


def test_configure_logging_sets_level():
    configure_logging(Settings(LOG_LEVEL="WARNING", LOG_JSON=True))
    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert len(root.handlers) == 1
