"""
Audit Event Types

Event types recorded by the security monitor and the risk levels
attached to every event.
"""

from enum import Enum


class AuditEventType(str, Enum):
    """Kinds of events in the authorization audit trail."""

    # =========================================================================
    # PERMISSION CHECKS
    # =========================================================================
    PERMISSION_CHECK = "permission_check"
    PERMISSION_GRANTED = "permission_granted"
    PERMISSION_DENIED = "permission_denied"

    # =========================================================================
    # GRANT MANAGEMENT
    # =========================================================================
    DYNAMIC_PERMISSION_ASSIGNED = "dynamic_permission_assigned"
    DYNAMIC_PERMISSION_REVOKED = "dynamic_permission_revoked"
    ROLE_ASSIGNED = "role_assigned"
    ROLE_REVOKED = "role_revoked"

    # =========================================================================
    # SECURITY
    # =========================================================================
    SECURITY_VIOLATION = "security_violation"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"

    # =========================================================================
    # ACCESS
    # =========================================================================
    SYSTEM_ACCESS = "system_access"
    DATA_ACCESS = "data_access"
    CONFIGURATION_CHANGE = "configuration_change"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"


class RiskLevel(str, Enum):
    """Coarse risk classification used for alerting and reporting."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def at_least(self, other: "RiskLevel") -> "RiskLevel":
        """The higher of this level and ``other``."""
        return self if self.rank >= other.rank else other


_RANKS = {
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
}
