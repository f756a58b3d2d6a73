"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from config.settings import AuditSettings, CacheSettings, GrantSettings, Settings


class TestDefaults:
    """Default values."""

    def test_cache_defaults(self, monkeypatch):
        monkeypatch.delenv("AUTHZ_CACHE_L1_MAX_SIZE", raising=False)
        settings = CacheSettings()

        assert settings.l1_max_size == 1000
        assert settings.l2_max_size == 10000
        assert settings.default_ttl_seconds == 300
        assert settings.high_ttl_seconds == 600
        assert settings.promotion_hits == 2

    def test_grant_defaults(self):
        assert GrantSettings().statistics_window_days == 30

    def test_audit_defaults(self):
        settings = AuditSettings()
        assert settings.max_log_size == 100000
        assert settings.retention_days == 90
        assert settings.alert_window_seconds == 3600


class TestEnvironment:
    """Environment variable loading."""

    def test_cache_prefix(self, monkeypatch):
        monkeypatch.setenv("AUTHZ_CACHE_L1_MAX_SIZE", "42")
        assert CacheSettings().l1_max_size == 42

    def test_audit_prefix(self, monkeypatch):
        monkeypatch.setenv("AUTHZ_AUDIT_ALERT_THRESHOLD_HIGH", "3")
        assert AuditSettings().alert_thresholds["high"] == 3

    def test_nested_settings_read_environment(self, monkeypatch):
        monkeypatch.setenv("AUTHZ_GRANTS_SWEEP_INTERVAL_SECONDS", "5")
        assert Settings().grants.sweep_interval_seconds == 5


class TestValidation:
    """Validators."""

    def test_business_hours_out_of_range(self):
        with pytest.raises(ValidationError):
            AuditSettings(business_hours_end=24)

    def test_business_hours_inverted(self):
        with pytest.raises(ValidationError):
            AuditSettings(business_hours_start=20, business_hours_end=8)


class TestEnvironmentFlags:
    """Derived environment flags."""

    @pytest.mark.parametrize("environment,is_test", [
        ("test", True),
        ("testing", True),
        ("development", False),
        ("production", False),
    ])
    def test_is_test(self, environment, is_test):
        assert Settings(environment=environment).is_test is is_test

    def test_is_production(self):
        assert Settings(environment="staging").is_production
        assert not Settings(environment="test").is_production

    def test_warming_off_in_tests(self):
        assert not Settings(environment="test").cache_warming_enabled

    def test_warming_on_elsewhere(self, monkeypatch):
        monkeypatch.delenv("AUTHZ_CACHE_WARMING_ENABLED", raising=False)
        assert Settings(environment="development").cache_warming_enabled

    def test_warming_disabled_by_flag(self, monkeypatch):
        monkeypatch.setenv("AUTHZ_CACHE_WARMING_ENABLED", "false")
        assert not Settings(environment="development").cache_warming_enabled
