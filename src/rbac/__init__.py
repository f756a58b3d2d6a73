"""
Role- and Context-Aware Authorization

4-role RBAC with hierarchy inheritance, context overrides (ownership,
assignment, admin) and time-limited dynamic grants.

Hierarchy:
    Level 1 - admin: Full system access
    Level 2 - editor: Authors products and submits drafts
            - reviewer: Approves and rejects products in review
    Level 3 - viewer: Read-only access

Usage:
    from rbac import AuthorizationEngine, EvaluationContext, Role

    engine = AuthorizationEngine()
    ctx = EvaluationContext(actor_id="u-1", actor_role=Role.VIEWER)
    result = await engine.evaluate(ctx, "products:read")
"""

from .roles import Role, RoleInfo, ROLES, Level, get_role_info, parse_role
from .permissions import (
    BareAction,
    Exact,
    GlobalWildcard,
    InvalidPermissionError,
    PermissionPattern,
    ResourceWildcard,
    matches,
    parse_permission,
)
from .role_permissions import (
    ROLE_PERMISSIONS,
    base_permissions,
    hierarchy_permissions,
    is_granted_by_hierarchy,
    is_granted_by_role,
)
from .context import EvaluationContext, RequestMetadata, ResourceType, WorkflowState
from .results import DecisionSource, Outcome, PermissionResult
from .dynamic_permissions import DynamicGrant, DynamicPermissionManager, GrantRevocation
from .engine import AuthorizationEngine
from .maintenance import MaintenanceRunner

__all__ = [
    # Roles
    "Role",
    "RoleInfo",
    "ROLES",
    "Level",
    "get_role_info",
    "parse_role",
    # Permission grammar
    "BareAction",
    "Exact",
    "GlobalWildcard",
    "InvalidPermissionError",
    "PermissionPattern",
    "ResourceWildcard",
    "matches",
    "parse_permission",
    # Role table
    "ROLE_PERMISSIONS",
    "base_permissions",
    "hierarchy_permissions",
    "is_granted_by_hierarchy",
    "is_granted_by_role",
    # Context
    "EvaluationContext",
    "RequestMetadata",
    "ResourceType",
    "WorkflowState",
    # Results
    "DecisionSource",
    "Outcome",
    "PermissionResult",
    # Dynamic grants
    "DynamicGrant",
    "DynamicPermissionManager",
    "GrantRevocation",
    # Engine
    "AuthorizationEngine",
    "MaintenanceRunner",
]
