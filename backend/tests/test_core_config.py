"""
Tests for upnext/core/config.py - settings loading and production validation.
"""
import pytest

from upnext.core.config import Settings

SECURE_KEY = "a-very-long-and-random-production-secret-key-value"


def production_env(monkeypatch, **overrides):
    env = {
        "ENVIRONMENT": "production",
        "DEBUG": "false",
        "SECRET_KEY": SECURE_KEY,
        "DEFAULT_ADMIN_PASSWORD": "a-strong-admin-password",
        "ALLOWED_ORIGINS": "https://upnext.example.com",
    }
    env.update(overrides)
    for key, value in env.items():
        monkeypatch.setenv(key, value)


class TestDefaults:
    """Test development defaults."""

    def test_development_defaults_load(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "development")

        s = Settings(_env_file=None)

        assert s.API_PREFIX == "/api"
        assert s.SESSION_TTL_HOURS == 24
        assert s.SESSION_COOKIE_NAME == "auth-token"
        assert s.AUDIT_LOG_LIMIT == 1000
        assert s.LEAD_ASSIGNMENT_LIMIT == 1000
        assert s.TEMPORARY_INACTIVE_MINUTES == [30, 60, 90]
        assert s.COOKIE_SECURE is False

    def test_kv_url_alias(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        monkeypatch.setenv("KV_URL", "redis://cache:6379/1")

        assert Settings(_env_file=None).REDIS_URL == "redis://cache:6379/1"

    def test_comma_separated_lists(self, monkeypatch):
        monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example.com, https://b.example.com")
        monkeypatch.setenv("TEMPORARY_INACTIVE_MINUTES", "15,45")

        s = Settings(_env_file=None)

        assert s.ALLOWED_ORIGINS == ["https://a.example.com", "https://b.example.com"]
        assert s.TEMPORARY_INACTIVE_MINUTES == [15, 45]

    def test_unknown_delivery_mode_rejected(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATION_DELIVERY", "pigeon")

        with pytest.raises(ValueError, match="NOTIFICATION_DELIVERY"):
            Settings(_env_file=None)


class TestProductionValidation:
    """Insecure defaults fail hard in production."""

    def test_secure_production_config_loads(self, monkeypatch):
        production_env(monkeypatch)

        s = Settings(_env_file=None)

        assert s.COOKIE_SECURE is True

    def test_default_secret_key_rejected(self, monkeypatch):
        production_env(monkeypatch, SECRET_KEY="changeme")

        with pytest.raises(ValueError, match="SECRET_KEY"):
            Settings(_env_file=None)

    def test_default_admin_password_rejected(self, monkeypatch):
        production_env(monkeypatch, DEFAULT_ADMIN_PASSWORD="admin123")

        with pytest.raises(ValueError, match="DEFAULT_ADMIN_PASSWORD"):
            Settings(_env_file=None)

    def test_localhost_origins_rejected(self, monkeypatch):
        production_env(monkeypatch, ALLOWED_ORIGINS="http://localhost:3000")

        with pytest.raises(ValueError, match="ALLOWED_ORIGINS"):
            Settings(_env_file=None)

    def test_debug_rejected(self, monkeypatch):
        production_env(monkeypatch, DEBUG="true")

        with pytest.raises(ValueError, match="DEBUG"):
            Settings(_env_file=None)
