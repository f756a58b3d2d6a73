"""Application settings using Pydantic Settings.

Centralized configuration for the authorization engine. Each subsystem
reads its own prefixed environment variables:

- AUTHZ_CACHE_*: two-tier permission cache sizing, TTLs and warm-up
- AUTHZ_GRANTS_*: dynamic grant sweeping and statistics window
- AUTHZ_AUDIT_*: audit log size, retention, alert thresholds and anomaly
  heuristics
- APP_*: application name and environment
"""

import logging
from functools import lru_cache
from typing import Dict

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class CacheSettings(BaseSettings):
    """Two-tier permission cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUTHZ_CACHE_",
        extra="ignore",
    )

    # Tier sizing
    l1_max_size: int = Field(default=1000, description="Max entries in the hot tier")
    l2_max_size: int = Field(default=10000, description="Max entries in the secondary tier")

    # TTLs by priority
    default_ttl_seconds: float = Field(default=300.0, description="TTL for normal priority entries")
    critical_ttl_seconds: float = Field(default=1800.0, description="TTL for critical priority entries")
    low_ttl_seconds: float = Field(default=60.0, description="TTL for low priority entries")

    # Access tracking
    frequent_access_threshold: int = Field(
        default=3, description="Accesses within the window that mark a key as frequent"
    )
    frequent_access_window_seconds: float = Field(
        default=300.0, description="Window for frequent access tracking"
    )
    promotion_hits: int = Field(
        default=2, description="Tier-2 hits within the TTL that promote an entry to tier 1"
    )

    # Warm-up and maintenance
    warming_enabled: bool = Field(default=True, description="Seed common decisions at startup")
    max_warming_operations: int = Field(default=100, description="Max entries seeded per warm-up")
    warming_interval_seconds: float = Field(default=300.0, description="Interval between re-warms")
    compaction_interval_seconds: float = Field(
        default=60.0, description="Interval between expired-entry compactions"
    )

    @property
    def high_ttl_seconds(self) -> float:
        """High priority entries live twice as long as normal ones."""
        return self.default_ttl_seconds * 2


class GrantSettings(BaseSettings):
    """Dynamic permission grant configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUTHZ_GRANTS_",
        extra="ignore",
    )

    sweep_interval_seconds: float = Field(
        default=60.0, description="Interval between expired-grant sweeps"
    )
    statistics_window_days: int = Field(
        default=30, description="Window for recent assignment/revocation counts"
    )


class AuditSettings(BaseSettings):
    """Audit log and security monitoring configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUTHZ_AUDIT_",
        extra="ignore",
    )

    # Storage limits
    max_log_size: int = Field(default=100000, description="Max events kept in memory")
    retention_days: int = Field(default=90, description="Days to keep audit events")
    retention_sweep_interval_seconds: float = Field(
        default=3600.0, description="Interval between retention sweeps"
    )

    # Alerting
    enable_real_time_alerts: bool = Field(default=True, description="Raise threshold alerts")
    alert_threshold_low: int = Field(default=1000, description="Low risk events per window")
    alert_threshold_medium: int = Field(default=100, description="Medium risk events per window")
    alert_threshold_high: int = Field(default=10, description="High risk events per window")
    alert_threshold_critical: int = Field(default=1, description="Critical risk events per window")
    alert_window_seconds: float = Field(default=3600.0, description="Alert counting window")

    # Anomaly heuristics
    business_hours_start: int = Field(default=6, description="First hour considered normal")
    business_hours_end: int = Field(default=22, description="Last hour considered normal")
    burst_threshold: int = Field(
        default=20, description="Events by one actor within the burst window before flagging"
    )
    burst_window_seconds: float = Field(default=300.0, description="Burst detection window")
    ip_fanout_threshold: int = Field(
        default=3, description="Distinct actors per IP before flagging"
    )
    ip_fanout_window_entries: int = Field(
        default=10, description="Recent events from one IP considered for fan-out"
    )

    @model_validator(mode="after")
    def _check_business_hours(self) -> "AuditSettings":
        if not (0 <= self.business_hours_start <= 23 and 0 <= self.business_hours_end <= 23):
            raise ValueError("business hours must be between 0 and 23")
        if self.business_hours_start > self.business_hours_end:
            raise ValueError("business_hours_start must not exceed business_hours_end")
        return self

    @property
    def alert_thresholds(self) -> Dict[str, int]:
        """Alert thresholds keyed by risk level value."""
        return {
            "low": self.alert_threshold_low,
            "medium": self.alert_threshold_medium,
            "high": self.alert_threshold_high,
            "critical": self.alert_threshold_critical,
        }


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    name: str = Field(default="Authorization Engine", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment name")

    # Nested settings (loaded separately)
    @property
    def cache(self) -> CacheSettings:
        return CacheSettings()

    @property
    def grants(self) -> GrantSettings:
        return GrantSettings()

    @property
    def audit(self) -> AuditSettings:
        return AuditSettings()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment in ("production", "prod", "staging")

    @property
    def is_test(self) -> bool:
        """Check if running under the test suite or another ephemeral environment."""
        return self.environment in ("test", "testing")

    @property
    def cache_warming_enabled(self) -> bool:
        """Warm-up only runs outside test environments."""
        return self.cache.warming_enabled and not self.is_test


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Cached settings loaded from environment.
    """
    settings = Settings()
    logger.debug(f"Loaded settings for environment={settings.environment}")
    return settings
