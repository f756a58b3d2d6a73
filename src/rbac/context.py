"""
Evaluation Context

EvaluationContext is the object passed into every authorization check.
It carries who is asking, which resource they are acting on and the
request metadata the audit trail records.

Contexts are built fresh per request and never persisted.
"""

from enum import Enum
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Union

from .roles import Role


class WorkflowState(str, Enum):
    """Lifecycle state of a product moving through review."""
    DRAFT = "draft"
    REVIEW = "review"
    APPROVED = "approved"
    PUBLISHED = "published"
    REJECTED = "rejected"


def _enum_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", str(value))


class ResourceType(str, Enum):
    """Kinds of resources a check can be scoped to."""
    PRODUCT = "product"
    USER = "user"
    WORKFLOW = "workflow"
    AUDIT = "audit"
    NOTIFICATION = "notification"


@dataclass
class RequestMetadata:
    """Transport-level details attached to a request."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    device: Optional[Dict[str, Any]] = None
    """e.g. {"type": "desktop", "os": "linux", "browser": "firefox"}"""

    location: Optional[Dict[str, Any]] = None
    """e.g. {"country": "US", "region": "CA", "city": "San Jose"}"""

    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "session_id": self.session_id,
            "request_id": self.request_id,
        }
        data.update(self.extra)
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class EvaluationContext:
    """
    Everything known about a single authorization request.

    Only ``actor_id`` and ``actor_role`` are required. The ownership and
    assignment fields are supplied only for resource-scoped checks;
    leaving them out disables the corresponding context rules.

    Usage:
        ctx = EvaluationContext(actor_id="u-1", actor_role=Role.EDITOR)
        result = await engine.evaluate(ctx, "products:create")
    """

    # =========================================================================
    # Identity
    # =========================================================================

    actor_id: str
    """Identifier of the user making the request."""

    actor_role: Union[Role, str]
    """Role of the actor. Values outside the role set are denied."""

    actor_email: str = ""
    """Actor email, recorded in the audit trail."""

    # =========================================================================
    # Target
    # =========================================================================

    target_user_id: Optional[str] = None
    """User being acted on, for user-management checks."""

    resource_id: Optional[str] = None
    """Identifier of the resource (e.g. a product id)."""

    resource_type: Optional[ResourceType] = None

    resource_owner_id: Optional[str] = None
    """Owner of the resource, enables the ownership rule."""

    assigned_actor_id: Optional[str] = None
    """Reviewer assigned to the resource, enables the assignment rule."""

    current_state: Optional[WorkflowState] = None
    target_state: Optional[WorkflowState] = None

    metadata: RequestMetadata = field(default_factory=RequestMetadata)

    @classmethod
    def for_product(
        cls,
        actor_id: str,
        actor_role: Union[Role, str],
        product_id: str,
        owner_id: Optional[str] = None,
        assigned_reviewer_id: Optional[str] = None,
        state: Optional[WorkflowState] = None,
        **kwargs: Any,
    ) -> "EvaluationContext":
        """Build a context scoped to a product in the review workflow."""
        return cls(
            actor_id=actor_id,
            actor_role=actor_role,
            resource_id=product_id,
            resource_type=ResourceType.PRODUCT,
            resource_owner_id=owner_id,
            assigned_actor_id=assigned_reviewer_id,
            current_state=state,
            **kwargs,
        )

    def with_overrides(self, **changes: Any) -> "EvaluationContext":
        """Return a copy with some fields replaced."""
        return replace(self, **changes)

    @property
    def role_value(self) -> str:
        """Role as a plain string, whether or not it is recognized."""
        if isinstance(self.actor_role, Role):
            return self.actor_role.value
        return str(self.actor_role)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and audit metadata."""
        return {
            "actor_id": self.actor_id,
            "actor_role": self.role_value,
            "actor_email": self.actor_email,
            "target_user_id": self.target_user_id,
            "resource_id": self.resource_id,
            "resource_type": _enum_value(self.resource_type),
            "resource_owner_id": self.resource_owner_id,
            "assigned_actor_id": self.assigned_actor_id,
            "current_state": _enum_value(self.current_state),
            "target_state": _enum_value(self.target_state),
        }
