"""Unit tests for environment-driven settings."""

import os
from datetime import timedelta

import pytest
from pydantic import ValidationError

from session_guard.settings import SessionGuardSettings, get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the host environment and any .env file."""
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("SESSION_GUARD_"):
            monkeypatch.delenv(name)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSessionGuardSettings:
    """Test settings parsing and conversion."""

    def test_defaults_match_config_defaults(self):
        config = SessionGuardSettings().to_config()

        assert config.session_ttl == timedelta(hours=24)
        assert config.invalidation_ttl == timedelta(hours=24)
        assert config.new_location_threshold_km == 100.0
        assert config.storage_type == "database"
        assert config.audit_type == "logger"
        assert config.cache_cleanup_interval == timedelta(hours=48)

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("SESSION_GUARD_SESSION_TTL_SECONDS", "900")
        monkeypatch.setenv("SESSION_GUARD_INVALIDATION_TTL_SECONDS", "3600")
        monkeypatch.setenv("SESSION_GUARD_NEW_LOCATION_THRESHOLD_KM", "250.5")
        monkeypatch.setenv("SESSION_GUARD_STORAGE_TYPE", "memory")
        monkeypatch.setenv("SESSION_GUARD_SERIALIZE_REGISTRATIONS", "true")
        monkeypatch.setenv("SESSION_GUARD_LOG_LEVEL", "debug")

        settings = SessionGuardSettings()
        config = settings.to_config()

        assert settings.log_level == "DEBUG"
        assert config.session_ttl == timedelta(seconds=900)
        assert config.invalidation_ttl == timedelta(hours=1)
        assert config.new_location_threshold_km == 250.5
        assert config.storage_type == "memory"
        assert config.serialize_registrations is True

    def test_reads_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("SESSION_GUARD_AUDIT_TYPE=noop\n")

        assert SessionGuardSettings().audit_type == "noop"

    def test_empty_geoip_path_is_none(self, monkeypatch):
        monkeypatch.setenv("SESSION_GUARD_GEOIP_DATABASE_PATH", "")

        assert SessionGuardSettings().to_config().geoip_database_path is None

    @pytest.mark.parametrize(
        "name,value",
        [
            ("SESSION_GUARD_SESSION_TTL_SECONDS", "0"),
            ("SESSION_GUARD_NEW_LOCATION_THRESHOLD_KM", "-1"),
            ("SESSION_GUARD_STORAGE_TYPE", "mongo"),
            ("SESSION_GUARD_LOG_LEVEL", "LOUD"),
        ],
    )
    def test_invalid_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ValidationError):
            SessionGuardSettings()

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
