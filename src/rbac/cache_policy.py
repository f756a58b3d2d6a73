"""
Cache policy for authorization decisions.

Derives cache keys, priorities and tags from an evaluation context, and
builds the role-scoped warm-up set.

Two key spaces share the cache:
- ``perm:<role>:<digest>`` full decisions, keyed by everything that can
  change the outcome of a check
- ``role:<role>:<permission>`` role-table lookups, independent of the
  actor, seeded by warm-up and reused by every actor with that role
"""

import hashlib
import json
from typing import Callable, Iterable, List, Optional

from cache.permission_cache import CachePriority, WarmEntry

from .context import EvaluationContext
from .permissions import PermissionPattern, parse_permission
from .results import PermissionResult
from .roles import Role, parse_role

DECISION_PREFIX = "perm:"
ROLE_PREFIX = "role:"

READ_MARKERS = ("read", "view", "list")
WRITE_MARKERS = ("create", "update", "edit", "delete")

COMMON_CHECKS = (
    "products:read",
    "products:create",
    "products:write",
    "products:delete",
    "workflow:submit",
    "workflow:approve",
    "workflow:reject",
    "workflow:publish",
    "audit:read",
    "notifications:read",
    "users:manage_roles",
)
"""Permissions seeded for every role during warm-up."""


def _digest(parts) -> str:
    payload = json.dumps(parts, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode()).hexdigest()[:32]


def _value(field) -> str:
    if field is None:
        return ""
    return getattr(field, "value", str(field))


def decision_key(context: EvaluationContext, action: str, resource: Optional[str]) -> str:
    """Deterministic key over every context field that affects a decision."""
    parts = [
        context.actor_id,
        context.role_value,
        action,
        resource or "",
        context.resource_id or "",
        context.target_user_id or "",
        context.resource_owner_id or "",
        context.assigned_actor_id or "",
        _value(context.current_state),
        _value(context.target_state),
    ]
    return f"{DECISION_PREFIX}{context.role_value}:{_digest(parts)}"


def role_key(role: Role, permission: PermissionPattern) -> str:
    return f"{ROLE_PREFIX}{role.value}:{permission}"


def decision_priority(
    context: EvaluationContext, action: str, result: PermissionResult
) -> CachePriority:
    """Admin checks are critical; reads high; writes normal; other denials low."""
    if parse_role(context.actor_role) == Role.ADMIN:
        return CachePriority.CRITICAL

    action_lower = action.lower() if isinstance(action, str) else ""
    if not action_lower:
        return CachePriority.NORMAL
    if any(marker in action_lower for marker in READ_MARKERS):
        return CachePriority.HIGH
    if any(marker in action_lower for marker in WRITE_MARKERS):
        return CachePriority.NORMAL
    if not result.granted:
        return CachePriority.LOW
    return CachePriority.NORMAL


def decision_tags(context: EvaluationContext, action: str, resource: Optional[str]) -> List[str]:
    """Tags enabling bulk invalidation by role, user, action or resource."""
    tags = [f"role:{context.role_value}"]
    if context.actor_id:
        tags.append(f"user:{context.actor_id}")
    if isinstance(action, str) and action:
        tags.append(f"action:{action.lower()}")
    if resource:
        tags.append(f"resource:{resource}")
    if context.resource_id:
        tags.append(f"product:{context.resource_id}")
    if context.resource_owner_id:
        tags.append(f"owner:{context.resource_owner_id}")
    if context.assigned_actor_id:
        tags.append(f"reviewer:{context.assigned_actor_id}")
    return tags


def role_tags(role: Role, permission: PermissionPattern) -> List[str]:
    tags = [f"role:{role.value}", "scope:role", f"action:{permission}"]
    resource = getattr(permission, "resource", None)
    if resource:
        tags.append(f"resource:{resource}")
    return tags


def role_priority(role: Role, permission: PermissionPattern) -> CachePriority:
    if role == Role.ADMIN:
        return CachePriority.CRITICAL
    if any(marker in str(permission) for marker in READ_MARKERS):
        return CachePriority.HIGH
    return CachePriority.NORMAL


def warm_entries(
    role_check: Callable[[Role, PermissionPattern], bool],
    roles: Iterable[Role] = tuple(Role),
    permissions: Iterable[str] = COMMON_CHECKS,
) -> List[WarmEntry]:
    """Role x common-permission lookups to seed at startup."""
    parsed = [parse_permission(p) for p in permissions]
    entries = []
    for role in roles:
        for permission in parsed:
            entries.append(
                WarmEntry(
                    key=role_key(role, permission),
                    value=role_check(role, permission),
                    priority=role_priority(role, permission),
                    tags=role_tags(role, permission),
                )
            )
    return entries
