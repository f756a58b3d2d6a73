"""
Audit Event Model

A single append-only record in the authorization audit trail. Carries
the actor, the action and resource, the outcome, a risk level and the
request details (session, request id, device, geo) needed to
reconstruct what happened.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .event_types import AuditEventType, RiskLevel


def _new_event_id() -> str:
    return f"audit_{uuid.uuid4().hex[:20]}"


@dataclass
class AuditEvent:
    """
    One audit trail entry.

    Events are never modified after they are recorded.
    """

    event_type: AuditEventType
    actor_id: str
    actor_role: str
    action: str
    success: bool
    risk_level: RiskLevel = RiskLevel.LOW
    actor_email: str = ""
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    # Request details
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    device: Optional[Dict[str, Any]] = None
    location: Optional[Dict[str, Any]] = None

    event_id: str = field(default_factory=_new_event_id)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(
        self,
        include_metadata: bool = True,
        include_device: bool = True,
        include_location: bool = True,
    ) -> Dict[str, Any]:
        """Convert to dictionary for export and serialization."""
        data: Dict[str, Any] = {
            "id": self.event_id,
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.actor_id,
            "user_role": self.actor_role,
            "user_email": self.actor_email,
            "ip_address": self.ip_address,
            "session_id": self.session_id,
            "request_id": self.request_id,
            "action": self.action,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "success": self.success,
            "reason": self.reason,
            "risk_level": self.risk_level.value,
        }
        if include_metadata and self.metadata:
            data["metadata"] = dict(self.metadata)
        if include_device and self.device:
            data["device"] = dict(self.device)
        if include_location and self.location:
            data["location"] = dict(self.location)
        return data
