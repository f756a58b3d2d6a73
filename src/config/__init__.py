"""Configuration module for the authorization engine."""

from .settings import (
    AuditSettings,
    CacheSettings,
    GrantSettings,
    Settings,
    get_settings,
)

__all__ = [
    "AuditSettings",
    "CacheSettings",
    "GrantSettings",
    "Settings",
    "get_settings",
]
