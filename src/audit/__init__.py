"""
Audit Trail and Security Monitoring.

Append-only record of authorization decisions and privileged events:
- Risk classification of every event
- Anomaly heuristics (off-hours, bursts, IP fan-out)
- Threshold alerts
- Retention pruning
- JSON / CSV / XML export

    from audit import SecurityMonitor, AuditFilters

    monitor = SecurityMonitor()
    monitor.query(AuditFilters(actor_id="u-1", limit=50))
"""

from .event_types import AuditEventType, RiskLevel
from .entry import AuditEvent
from .filters import AuditFilters
from .risk import RiskAssessor, is_high_risk_action
from .exporters import ExportFormat, ExportOptions, export_events
from .security_monitor import AuditStatistics, SecurityAlert, SecurityMonitor

__all__ = [
    # Event types
    "AuditEventType",
    "RiskLevel",
    # Entry model
    "AuditEvent",
    "AuditFilters",
    # Risk
    "RiskAssessor",
    "is_high_risk_action",
    # Export
    "ExportFormat",
    "ExportOptions",
    "export_events",
    # Monitor
    "AuditStatistics",
    "SecurityAlert",
    "SecurityMonitor",
]
