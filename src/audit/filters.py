"""Query filters for the audit trail."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from .entry import AuditEvent
from .event_types import AuditEventType, RiskLevel


@dataclass
class AuditFilters:
    """
    Criteria for selecting audit events. Unset fields match everything.

    ``limit``/``offset`` apply after sorting newest first.
    """

    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    event_type: Optional[Union[AuditEventType, str]] = None
    action: Optional[str] = None
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    success: Optional[bool] = None
    risk_level: Optional[Union[RiskLevel, str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    ip_address: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0

    def matches(self, event: AuditEvent) -> bool:
        if self.actor_id is not None and event.actor_id != self.actor_id:
            return False
        if self.actor_role is not None and event.actor_role != _value(self.actor_role):
            return False
        if self.event_type is not None and event.event_type.value != _value(self.event_type):
            return False
        if self.action is not None and event.action != self.action:
            return False
        if self.resource is not None and event.resource != self.resource:
            return False
        if self.resource_id is not None and event.resource_id != self.resource_id:
            return False
        if self.success is not None and event.success != self.success:
            return False
        if self.risk_level is not None and event.risk_level.value != _value(self.risk_level):
            return False
        if self.start_date is not None and event.timestamp < _aware(self.start_date):
            return False
        if self.end_date is not None and event.timestamp > _aware(self.end_date):
            return False
        if self.ip_address is not None and event.ip_address != self.ip_address:
            return False
        if self.session_id is not None and event.session_id != self.session_id:
            return False
        if self.request_id is not None and event.request_id != self.request_id:
            return False
        return True


def _value(value) -> str:
    return getattr(value, "value", value)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
