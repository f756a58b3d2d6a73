"""
Risk classification for audit events.

Deterministic rules:
- failed actions are at least HIGH
- actions in the high-risk vocabulary are HIGH
- actions in the medium-risk vocabulary are MEDIUM
- everything else is LOW, raised to MEDIUM when an anomaly fires

Anomalies:
- off_hours: access outside the configured business hours
- burst: too many events by one actor in a short window
- ip_fanout: too many distinct actors behind one IP address
"""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from config.settings import AuditSettings

from .entry import AuditEvent
from .event_types import RiskLevel


HIGH_RISK_ACTIONS = (
    "delete",
    "admin",
    "manage_users",
    "system_config",
    "export_data",
    "bulk_operations",
)

MEDIUM_RISK_ACTIONS = (
    "create",
    "edit",
    "approve",
    "reject",
    "publish",
    "assign_permission",
    "revoke_permission",
    "assign_dynamic_permission",
    "revoke_dynamic_permission",
)

ANOMALY_OFF_HOURS = "off_hours"
ANOMALY_BURST = "burst"
ANOMALY_IP_FANOUT = "ip_fanout"


def _contains_any(action: str, vocabulary: Sequence[str]) -> bool:
    action_lower = (action or "").lower()
    return any(term in action_lower for term in vocabulary)


def is_high_risk_action(action: str) -> bool:
    """Whether an action belongs to the high-risk vocabulary."""
    return _contains_any(action, HIGH_RISK_ACTIONS)


def is_medium_risk_action(action: str) -> bool:
    return _contains_any(action, MEDIUM_RISK_ACTIONS)


class RiskAssessor:
    """Classifies events and detects unusual access patterns."""

    def __init__(self, settings: Optional[AuditSettings] = None):
        self.settings = settings or AuditSettings()

    def detect_anomalies(
        self,
        history: Sequence[AuditEvent],
        actor_id: str,
        ip_address: Optional[str],
        now: datetime,
    ) -> List[str]:
        """
        Check the heuristics against the events recorded so far.

        Args:
            history: Events already in the log, oldest first
            actor_id: Actor of the event being recorded
            ip_address: Source IP of the event being recorded
            now: Current time

        Returns:
            Names of the anomalies that fired.
        """
        anomalies = []
        settings = self.settings

        if now.hour < settings.business_hours_start or now.hour > settings.business_hours_end:
            anomalies.append(ANOMALY_OFF_HOURS)

        since = now - timedelta(seconds=settings.burst_window_seconds)
        recent = 0
        for event in reversed(history):
            if event.timestamp <= since:
                break
            if event.actor_id == actor_id:
                recent += 1
        if recent > settings.burst_threshold:
            anomalies.append(ANOMALY_BURST)

        if ip_address:
            from_ip = []
            for event in reversed(history):
                if event.ip_address == ip_address:
                    from_ip.append(event)
                    if len(from_ip) >= settings.ip_fanout_window_entries:
                        break
            if len({e.actor_id for e in from_ip}) > settings.ip_fanout_threshold:
                anomalies.append(ANOMALY_IP_FANOUT)

        return anomalies

    def assess(self, action: str, success: bool, anomalies: Sequence[str] = ()) -> RiskLevel:
        """Risk level for an event."""
        if not success:
            return RiskLevel.HIGH
        if is_high_risk_action(action):
            return RiskLevel.HIGH
        if is_medium_risk_action(action):
            return RiskLevel.MEDIUM
        if anomalies:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW
