"""Pytest configuration and fixtures for test suite."""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Set test environment BEFORE any other imports
# This keeps cache warm-up off for every engine built by the suite
os.environ.setdefault("APP_ENVIRONMENT", "test")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


class FakeClock:
    """Manually advanced wall clock (timezone-aware UTC)."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeMonotonic:
    """Manually advanced monotonic clock in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    """Wall clock fixed at a weekday noon, inside business hours."""
    return FakeClock(datetime(2024, 6, 12, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def settings():
    from config.settings import Settings
    return Settings(environment="test")


@pytest.fixture
def cache_settings():
    from config.settings import CacheSettings
    return CacheSettings()


@pytest.fixture
def audit_settings():
    from config.settings import AuditSettings
    return AuditSettings()


@pytest.fixture
def grants(clock):
    """Fresh grant store on the fake clock."""
    from rbac.dynamic_permissions import DynamicPermissionManager
    return DynamicPermissionManager(clock=clock)


@pytest.fixture
def cache(cache_settings, monotonic):
    """Fresh two-tier cache on the fake monotonic clock, warm-up off."""
    from cache.permission_cache import PermissionCache
    return PermissionCache(cache_settings, clock=monotonic, warming_enabled=False)


@pytest.fixture
def monitor(audit_settings, clock):
    """Fresh security monitor on the fake clock."""
    from audit.security_monitor import SecurityMonitor
    return SecurityMonitor(audit_settings, clock=clock)


@pytest.fixture
def engine(settings, grants, cache, monitor):
    """Engine wired to fresh collaborators."""
    from rbac.engine import AuthorizationEngine
    return AuthorizationEngine(settings=settings, grants=grants, cache=cache, monitor=monitor)


@pytest.fixture
def viewer_context():
    from rbac.context import EvaluationContext
    from rbac.roles import Role
    return EvaluationContext(actor_id="viewer-1", actor_role=Role.VIEWER, actor_email="viewer@example.com")


@pytest.fixture
def editor_context():
    from rbac.context import EvaluationContext
    from rbac.roles import Role
    return EvaluationContext(actor_id="editor-1", actor_role=Role.EDITOR, actor_email="editor@example.com")


@pytest.fixture
def reviewer_context():
    from rbac.context import EvaluationContext
    from rbac.roles import Role
    return EvaluationContext(actor_id="reviewer-1", actor_role=Role.REVIEWER, actor_email="reviewer@example.com")


@pytest.fixture
def admin_context():
    from rbac.context import EvaluationContext
    from rbac.roles import Role
    return EvaluationContext(actor_id="admin-1", actor_role=Role.ADMIN, actor_email="admin@example.com")
