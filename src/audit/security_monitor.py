"""
Security Monitor

Append-only audit trail for authorization decisions and privileged
events, with per-event risk scoring, anomaly heuristics, threshold
alerts, retention pruning and export.

Usage:
    from audit import SecurityMonitor

    monitor = SecurityMonitor()
    monitor.log_permission_check(ctx, "products:delete", "products", False, "Denied")
    monitor.query(AuditFilters(actor_id="u-1"))
    monitor.export(ExportOptions(format=ExportFormat.CSV))

Alerts never block or change a decision: they are logged and handed to
any registered handlers.
"""

import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Union

from config.settings import AuditSettings

from .entry import AuditEvent
from .event_types import AuditEventType, RiskLevel
from .exporters import ExportFormat, ExportOptions, export_events, select_for_export
from .filters import AuditFilters
from .risk import RiskAssessor

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class SecurityAlert:
    """Raised when events at one risk level reach their hourly threshold."""

    risk_level: RiskLevel
    count: int
    threshold: int
    event_type: AuditEventType
    actor_id: str
    action: str
    timestamp: datetime


@dataclass
class AuditStatistics:
    """Aggregate view over the audit trail."""

    total_entries: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_risk_level: Dict[str, int] = field(default_factory=dict)
    by_user: Dict[str, int] = field(default_factory=dict)
    by_ip_address: Dict[str, int] = field(default_factory=dict)
    success_rate: float = 0.0
    recent_activity: int = 0
    top_actions: List[Tuple[str, int]] = field(default_factory=list)
    security_violations: int = 0
    suspicious_activity: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "by_type": dict(self.by_type),
            "by_risk_level": dict(self.by_risk_level),
            "by_user": dict(self.by_user),
            "by_ip_address": dict(self.by_ip_address),
            "success_rate": round(self.success_rate, 4),
            "recent_activity": self.recent_activity,
            "top_actions": [{"action": a, "count": c} for a, c in self.top_actions],
            "security_violations": self.security_violations,
            "suspicious_activity": self.suspicious_activity,
        }


def _request_fields(context: Any) -> Dict[str, Any]:
    """Pull transport details off an evaluation context's metadata."""
    meta = getattr(context, "metadata", None)
    if meta is None:
        return {}
    return {
        "ip_address": getattr(meta, "ip_address", None),
        "user_agent": getattr(meta, "user_agent", None),
        "session_id": getattr(meta, "session_id", None),
        "request_id": getattr(meta, "request_id", None),
        "device": getattr(meta, "device", None),
        "location": getattr(meta, "location", None),
    }


def _context_metadata(context: Any) -> Dict[str, Any]:
    meta = getattr(context, "metadata", None)
    to_dict = getattr(meta, "to_dict", None)
    return to_dict() if callable(to_dict) else {}


def _role_of(context: Any) -> str:
    role = getattr(context, "role_value", None)
    if role is None:
        role = getattr(context, "actor_role", "")
    return str(getattr(role, "value", role))


# =============================================================================
# MONITOR
# =============================================================================

class SecurityMonitor:
    """
    In-memory audit trail with risk scoring and alerting.

    Thread-safe. The trail keeps at most ``max_log_size`` events (oldest
    dropped first) and ``prune_expired`` removes events past retention.
    """

    def __init__(
        self,
        settings: Optional[AuditSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        assessor: Optional[RiskAssessor] = None,
    ):
        """
        Initialize the monitor.

        Args:
            settings: Audit settings (defaults loaded from environment)
            clock: Source of the current time, injectable for tests
            assessor: Risk assessor (defaults to one using ``settings``)
        """
        self.settings = settings or AuditSettings()
        self._clock = clock or _utcnow
        self._assessor = assessor or RiskAssessor(self.settings)

        self._events: Deque[AuditEvent] = deque(maxlen=self.settings.max_log_size)
        self._alerts: Deque[SecurityAlert] = deque(maxlen=1000)
        self._alert_handlers: List[Callable[[SecurityAlert], None]] = []
        self._lock = threading.RLock()

    def _now(self) -> datetime:
        now = self._clock()
        return now if now.tzinfo else now.replace(tzinfo=timezone.utc)

    # =========================================================================
    # CORE RECORDING
    # =========================================================================

    def record(
        self,
        event_type: AuditEventType,
        actor_id: str,
        actor_role: str,
        action: str,
        success: bool,
        actor_email: str = "",
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        risk_level: Optional[RiskLevel] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        session_id: Optional[str] = None,
        request_id: Optional[str] = None,
        device: Optional[Dict[str, Any]] = None,
        location: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """
        Append an event.

        When ``risk_level`` is not given it is computed from the action,
        the outcome and the anomaly heuristics.

        Returns: the recorded event
        """
        with self._lock:
            now = self._now()
            meta = dict(metadata or {})

            if risk_level is None:
                anomalies = self._assessor.detect_anomalies(
                    self._events, actor_id, ip_address, now
                )
                if anomalies:
                    meta["anomalies"] = anomalies
                risk_level = self._assessor.assess(action, success, anomalies)

            event = AuditEvent(
                event_type=event_type,
                actor_id=actor_id,
                actor_role=actor_role,
                actor_email=actor_email,
                action=action,
                resource=resource,
                resource_id=resource_id,
                success=success,
                reason=reason,
                metadata=meta,
                risk_level=risk_level,
                ip_address=ip_address,
                user_agent=user_agent,
                session_id=session_id,
                request_id=request_id,
                device=device,
                location=location,
                timestamp=now,
            )
            self._events.append(event)
            alert = self._check_for_alert(event) if self.settings.enable_real_time_alerts else None

        self._log(event)
        if alert is not None:
            self._dispatch(alert)
        return event

    # =========================================================================
    # CONVENIENCE LOGGERS
    # =========================================================================

    def log_permission_check(
        self,
        context: Any,
        action: str,
        resource: Optional[str],
        granted: bool,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log the outcome of an authorization check."""
        meta = dict(metadata or {})
        meta.update(_context_metadata(context))
        return self.record(
            event_type=(
                AuditEventType.PERMISSION_GRANTED if granted else AuditEventType.PERMISSION_DENIED
            ),
            actor_id=context.actor_id,
            actor_role=_role_of(context),
            actor_email=getattr(context, "actor_email", ""),
            action=action,
            resource=resource or "general",
            resource_id=getattr(context, "resource_id", None),
            success=granted,
            reason=reason,
            metadata=meta,
            **_request_fields(context),
        )

    def log_dynamic_permission_assigned(
        self,
        user_id: str,
        user_role: str,
        permission: str,
        granted_by: str,
        reason: str,
        user_email: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log a dynamic grant."""
        meta = dict(metadata or {})
        meta.update({"granted_by": granted_by, "permission": permission})
        return self.record(
            event_type=AuditEventType.DYNAMIC_PERMISSION_ASSIGNED,
            actor_id=user_id,
            actor_role=user_role,
            actor_email=user_email,
            action="assign_dynamic_permission",
            resource="permissions",
            resource_id=permission,
            success=True,
            reason=reason,
            metadata=meta,
            risk_level=RiskLevel.MEDIUM,
        )

    def log_dynamic_permission_revoked(
        self,
        user_id: str,
        user_role: str,
        permission: str,
        revoked_by: str,
        reason: str,
        user_email: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log a dynamic grant revocation."""
        meta = dict(metadata or {})
        meta.update({"revoked_by": revoked_by, "permission": permission})
        return self.record(
            event_type=AuditEventType.DYNAMIC_PERMISSION_REVOKED,
            actor_id=user_id,
            actor_role=user_role,
            actor_email=user_email,
            action="revoke_dynamic_permission",
            resource="permissions",
            resource_id=permission,
            success=True,
            reason=reason,
            metadata=meta,
            risk_level=RiskLevel.MEDIUM,
        )

    def log_security_violation(
        self,
        context: Any,
        action: str,
        resource: Optional[str],
        violation: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log a denied high-risk attempt. Always CRITICAL."""
        meta = dict(metadata or {})
        meta.update(_context_metadata(context))
        meta["violation"] = violation
        return self.record(
            event_type=AuditEventType.SECURITY_VIOLATION,
            actor_id=context.actor_id,
            actor_role=_role_of(context),
            actor_email=getattr(context, "actor_email", ""),
            action=action,
            resource=resource or "unknown",
            resource_id=getattr(context, "resource_id", None),
            success=False,
            reason=f"Security violation: {violation}",
            metadata=meta,
            risk_level=RiskLevel.CRITICAL,
            **_request_fields(context),
        )

    def log_suspicious_activity(
        self,
        context: Any,
        activity: str,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log suspicious activity. Always HIGH."""
        meta = dict(metadata or {})
        meta.update(_context_metadata(context))
        meta["activity"] = activity
        return self.record(
            event_type=AuditEventType.SUSPICIOUS_ACTIVITY,
            actor_id=context.actor_id,
            actor_role=_role_of(context),
            actor_email=getattr(context, "actor_email", ""),
            action="suspicious_activity",
            resource="system",
            success=False,
            reason=reason,
            metadata=meta,
            risk_level=RiskLevel.HIGH,
            **_request_fields(context),
        )

    def log_system_access(
        self,
        context: Any,
        system: str,
        action: str,
        success: bool,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log access to a system component."""
        meta = dict(metadata or {})
        meta.update(_context_metadata(context))
        return self.record(
            event_type=AuditEventType.SYSTEM_ACCESS,
            actor_id=context.actor_id,
            actor_role=_role_of(context),
            actor_email=getattr(context, "actor_email", ""),
            action=action,
            resource=system,
            success=success,
            metadata=meta,
            **_request_fields(context),
        )

    def log_data_access(
        self,
        context: Any,
        data_type: str,
        action: str,
        record_count: int,
        success: bool,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log a read or export of stored data."""
        meta = dict(metadata or {})
        meta.update(_context_metadata(context))
        meta["record_count"] = record_count
        return self.record(
            event_type=AuditEventType.DATA_ACCESS,
            actor_id=context.actor_id,
            actor_role=_role_of(context),
            actor_email=getattr(context, "actor_email", ""),
            action=action,
            resource=data_type,
            success=success,
            metadata=meta,
            **_request_fields(context),
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    def query(self, filters: Optional[AuditFilters] = None, **criteria: Any) -> List[AuditEvent]:
        """
        Select events, newest first.

        Accepts either an AuditFilters instance or its fields as keywords.
        """
        if filters is None:
            filters = AuditFilters(**criteria)

        with self._lock:
            selected = [e for e in self._events if filters.matches(e)]

        selected.reverse()
        if filters.offset:
            selected = selected[filters.offset:]
        if filters.limit is not None:
            selected = selected[:filters.limit]
        return selected

    def user_events(self, user_id: str, limit: Optional[int] = None) -> List[AuditEvent]:
        return self.query(AuditFilters(actor_id=user_id, limit=limit))

    def security_violations(self, limit: Optional[int] = None) -> List[AuditEvent]:
        return self.query(AuditFilters(event_type=AuditEventType.SECURITY_VIOLATION, limit=limit))

    def suspicious_activity(self, limit: Optional[int] = None) -> List[AuditEvent]:
        return self.query(AuditFilters(event_type=AuditEventType.SUSPICIOUS_ACTIVITY, limit=limit))

    def statistics(self) -> AuditStatistics:
        """Counts by type, risk, user and IP; success rate; last-24h volume; top actions."""
        now = self._now()
        since = now - timedelta(hours=24)
        with self._lock:
            events = list(self._events)

        by_type = {t.value: 0 for t in AuditEventType}
        by_risk = {r.value: 0 for r in RiskLevel}
        by_user: Counter = Counter()
        by_ip: Counter = Counter()
        actions: Counter = Counter()
        successes = 0
        recent = 0

        for event in events:
            by_type[event.event_type.value] += 1
            by_risk[event.risk_level.value] += 1
            by_user[event.actor_id] += 1
            if event.ip_address:
                by_ip[event.ip_address] += 1
            actions[event.action] += 1
            if event.success:
                successes += 1
            if event.timestamp >= since:
                recent += 1

        return AuditStatistics(
            total_entries=len(events),
            by_type=by_type,
            by_risk_level=by_risk,
            by_user=dict(by_user),
            by_ip_address=dict(by_ip),
            success_rate=successes / len(events) if events else 0.0,
            recent_activity=recent,
            top_actions=actions.most_common(10),
            security_violations=by_type[AuditEventType.SECURITY_VIOLATION.value],
            suspicious_activity=by_type[AuditEventType.SUSPICIOUS_ACTIVITY.value],
        )

    def export(self, options: Union[ExportOptions, ExportFormat, str, None] = None) -> str:
        """
        Export the trail.

        Raises:
            ValueError: If the format is not supported.
        """
        if options is None:
            options = ExportOptions()
        elif not isinstance(options, ExportOptions):
            options = ExportOptions(format=options)

        with self._lock:
            events = list(self._events)
        return export_events(select_for_export(events, options), options)

    # =========================================================================
    # ALERTS
    # =========================================================================

    def add_alert_handler(self, handler: Callable[[SecurityAlert], None]) -> None:
        """Register a callback invoked for every alert."""
        self._alert_handlers.append(handler)

    @property
    def alerts(self) -> List[SecurityAlert]:
        with self._lock:
            return list(self._alerts)

    def _check_for_alert(self, event: AuditEvent) -> Optional[SecurityAlert]:
        threshold = self.settings.alert_thresholds.get(event.risk_level.value)
        if not threshold:
            return None

        since = event.timestamp - timedelta(seconds=self.settings.alert_window_seconds)
        count = 0
        for existing in reversed(self._events):
            if existing.timestamp <= since:
                break
            if existing.risk_level == event.risk_level:
                count += 1

        if count < threshold:
            return None

        alert = SecurityAlert(
            risk_level=event.risk_level,
            count=count,
            threshold=threshold,
            event_type=event.event_type,
            actor_id=event.actor_id,
            action=event.action,
            timestamp=event.timestamp,
        )
        self._alerts.append(alert)
        return alert

    def _dispatch(self, alert: SecurityAlert) -> None:
        logger.warning(
            f"SECURITY ALERT: {alert.count} {alert.risk_level.value} risk events detected "
            f"(type={alert.event_type.value}, user={alert.actor_id}, action={alert.action})"
        )
        for handler in list(self._alert_handlers):
            try:
                handler(alert)
            except Exception as e:
                logger.error(f"Alert handler {handler!r} failed: {e}")

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def prune_expired(self) -> int:
        """Drop events older than the retention window. Returns count removed."""
        cutoff = self._now() - timedelta(days=self.settings.retention_days)
        with self._lock:
            before = len(self._events)
            kept = [e for e in self._events if e.timestamp > cutoff]
            self._events = deque(kept, maxlen=self.settings.max_log_size)
            removed = before - len(kept)

        if removed:
            logger.info(f"Pruned {removed} audit events older than {self.settings.retention_days} days")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._alerts.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def _log(self, event: AuditEvent) -> None:
        if event.risk_level == RiskLevel.CRITICAL:
            level = logging.CRITICAL
        elif event.risk_level == RiskLevel.HIGH or not event.success:
            level = logging.WARNING
        else:
            level = logging.INFO

        logger.log(
            level,
            f"AUDIT: {event.event_type.value} | {event.action} | "
            f"user={event.actor_id} | resource={event.resource}:{event.resource_id} | "
            f"risk={event.risk_level.value}"
        )
