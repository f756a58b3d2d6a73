"""
Role Capability Table

Static mapping of role -> granted permissions, plus hierarchy
inheritance. Higher-authority roles inherit everything granted to roles
with strictly less authority; the reverse never happens.

Usage:
    from rbac.role_permissions import base_permissions, is_granted_by_hierarchy

    base_permissions(Role.VIEWER)
    is_granted_by_hierarchy(Role.EDITOR, "products:read")  # True (from Viewer)
"""

from functools import lru_cache
from typing import Dict, FrozenSet, Tuple, Union

from .permissions import PermissionPattern, any_matches, as_permission, parse_permission
from .roles import Role, roles_below


# =============================================================================
# RAW PERMISSION STRINGS BY ROLE
# =============================================================================

_ADMIN = (
    # Full system access
    "*",
    "workflow:*",
    "products:*",
    "users:*",
    "audit:*",
    "notifications:*",
    "system:*",
    "reports:*",
    "settings:*",

    # Workflow management
    "workflow:publish",
    "workflow:unpublish",
    "workflow:reopen",
    "workflow:configure",
    "workflow:manage_states",
    "workflow:manage_transitions",
    "workflow:override_restrictions",
    "workflow:bulk_operations",
    "workflow:force_transitions",
    "workflow:view_all_products",
    "workflow:manage_assignments",

    # Product management
    "products:create",
    "products:read",
    "products:write",
    "products:delete",
    "products:bulk_create",
    "products:bulk_update",
    "products:bulk_delete",
    "products:bulk_approve",
    "products:bulk_reject",
    "products:bulk_publish",
    "products:export",
    "products:import",
    "products:view_all",
    "products:edit_any",
    "products:delete_any",

    # User management
    "users:create",
    "users:read",
    "users:write",
    "users:delete",
    "users:manage_roles",
    "users:assign_roles",
    "users:revoke_roles",
    "users:manage_permissions",
    "users:view_all",
    "users:impersonate",
    "users:reset_passwords",
    "users:manage_sessions",
    "users:bulk_operations",
    "users:export_data",

    # Audit and compliance
    "audit:read",
    "audit:write",
    "audit:export",
    "audit:view_all",
    "audit:manage_retention",
    "audit:generate_reports",
    "audit:compliance_checks",

    # Notifications
    "notifications:manage",
    "notifications:create",
    "notifications:send",
    "notifications:configure",
    "notifications:manage_templates",

    # System administration
    "system:configure",
    "system:maintenance",
    "system:backup",
    "system:restore",
    "system:monitor",
    "system:logs",
    "system:security",

    # Reports
    "reports:generate",
    "reports:view_all",
    "reports:export",
    "reports:schedule",
    "reports:analytics",

    # Settings
    "settings:general",
    "settings:workflow",
    "settings:notifications",
    "settings:security",
    "settings:integrations",
    "settings:api_keys",
    "settings:webhooks",
)

_EDITOR = (
    # Product authoring
    "products:create",
    "products:read",
    "products:write",
    "products:edit_own",
    "products:view_own",
    "products:delete_own",
    "products:duplicate",
    "products:clone",
    "products:save_draft",
    "products:auto_save",
    "products:manage_media",
    "products:upload_images",
    "products:manage_pricing_own",
    "products:manage_inventory_own",
    "products:manage_variants_own",
    "products:export_own",
    "products:import_own",

    # Workflow for own drafts
    "workflow:submit",
    "workflow:edit",
    "workflow:view_history",
    "workflow:view_own_history",
    "workflow:resubmit",
    "workflow:withdraw_submission",
    "workflow:request_review",
    "workflow:assign_reviewer",
    "workflow:view_assignments",
    "workflow:transition_draft_to_review",
    "workflow:transition_rejected_to_draft",
    "workflow:view_workflow_status",
    "workflow:add_workflow_comments",
    "workflow:respond_to_feedback",
    "workflow:view_rejection_reasons",

    # Drafts
    "draft:create",
    "draft:edit",
    "draft:save",
    "draft:delete",
    "draft:view",
    "draft:list_own",
    "draft:submit_for_review",
    "draft:preview",
    "draft:restore_version",
    "draft:compare_versions",

    # Content
    "content:create",
    "content:edit",
    "content:manage_own",
    "content:upload_assets",
    "content:manage_metadata",
    "content:manage_tags",
    "content:manage_descriptions",

    # Collaboration
    "collaboration:view_own_products",
    "collaboration:share_own_products",
    "collaboration:comment_on_own",
    "collaboration:respond_to_comments",

    # Notifications
    "notifications:read",
    "notifications:manage_own",
    "notifications:view_workflow_notifications",

    # Own audit history
    "audit:read_own",
    "audit:view_own_history",
    "audit:view_own_changes",
    "audit:export_own_history",

    # Limited bulk operations on own products
    "bulk:edit_own_products",
    "bulk:submit_own_products",
    "bulk:export_own_products",

    # Quality
    "quality:check_own_products",
    "quality:view_quality_scores",
    "quality:apply_quality_fixes",

    # Search
    "search:search_own_products",
    "search:filter_own_products",
    "search:save_search_queries",
)

_REVIEWER = (
    # Product viewing
    "products:read",
    "products:view_all",
    "products:view_details",
    "products:view_media",
    "products:view_specifications",
    "products:view_pricing",
    "products:view_inventory",
    "products:view_history",
    "products:view_versions",
    "products:view_comments",
    "products:view_feedback",
    "products:view_quality_scores",
    "products:export_review_data",

    # Approval workflow
    "workflow:approve",
    "workflow:reject",
    "workflow:conditional_approve",
    "workflow:request_changes",
    "workflow:request_additional_info",
    "workflow:escalate_to_admin",
    "workflow:delegate_review",
    "workflow:assign_reviewer",
    "workflow:reassign_reviewer",
    "workflow:view_assignments",
    "workflow:manage_assignments",
    "workflow:view_review_queue",
    "workflow:prioritize_reviews",
    "workflow:batch_approve",
    "workflow:batch_reject",
    "workflow:view_history",
    "workflow:view_all_history",
    "workflow:view_review_statistics",
    "workflow:export_review_data",

    # Reviews
    "review:create",
    "review:edit",
    "review:submit",
    "review:approve",
    "review:reject",
    "review:request_changes",
    "review:add_comments",
    "review:view_comments",
    "review:add_feedback",
    "review:rate_quality",
    "review:view_review_history",

    # Comments
    "comments:create",
    "comments:edit",
    "comments:delete",
    "comments:view",
    "comments:respond",
    "comments:resolve",
    "comments:reopen",

    # Quality assessment
    "quality:assess",
    "quality:rate",
    "quality:score",
    "quality:validate",
    "quality:check_compliance",
    "quality:check_completeness",
    "quality:view_quality_reports",

    # Notifications
    "notifications:read",
    "notifications:view_all",
    "notifications:view_review_notifications",
    "notifications:mark_as_read",

    # Audit
    "audit:read",
    "audit:read_all",
    "audit:view_review_audit",
    "audit:view_approval_audit",
    "audit:view_workflow_audit",
    "audit:export_audit_data",
    "audit:view_audit_statistics",

    # Search and reports
    "search:search_all_products",
    "search:search_review_queue",
    "search:filter_by_status",
    "reports:view_review_reports",
    "reports:view_quality_reports",
    "reports:export_review_reports",

    # Bulk review actions
    "bulk:approve_products",
    "bulk:reject_products",
    "bulk:request_changes",
    "bulk:assign_reviewers",
)

_VIEWER = (
    # Read-only products
    "products:read",
    "products:view_published",
    "products:view_approved",
    "products:view_details",
    "products:view_media",
    "products:view_specifications",
    "products:view_pricing",
    "products:view_history",
    "products:view_comments",
    "products:export_published",

    # Read-only audit
    "audit:read",
    "audit:view_public_history",
    "audit:view_audit_timeline",
    "audit:view_audit_statistics",

    # Read-only notifications
    "notifications:read",
    "notifications:view_public",
    "notifications:view_announcements",

    # Read-only search and reports
    "search:search_published",
    "search:filter_published",
    "reports:view_public_reports",
    "reports:view_summary_reports",

    # Read-only quality and workflow status
    "quality:view_scores",
    "quality:view_reports",
    "workflow:view_public_status",
    "workflow:view_public_history",
)

ROLE_PERMISSION_STRINGS: Dict[Role, Tuple[str, ...]] = {
    Role.ADMIN: _ADMIN,
    Role.EDITOR: _EDITOR,
    Role.REVIEWER: _REVIEWER,
    Role.VIEWER: _VIEWER,
}


# =============================================================================
# PARSED TABLE
# =============================================================================

ROLE_PERMISSIONS: Dict[Role, FrozenSet[PermissionPattern]] = {
    role: frozenset(parse_permission(p) for p in permissions)
    for role, permissions in ROLE_PERMISSION_STRINGS.items()
}


def base_permissions(role: Role) -> FrozenSet[PermissionPattern]:
    """Permissions granted directly to a role."""
    return ROLE_PERMISSIONS.get(role, frozenset())


@lru_cache(maxsize=None)
def hierarchy_permissions(role: Role) -> FrozenSet[PermissionPattern]:
    """Union of base permissions of every role with less authority than ``role``."""
    inherited = set()
    for lower in roles_below(role):
        inherited.update(base_permissions(lower))
    return frozenset(inherited)


def is_granted_by_role(role: Role, permission: Union[str, PermissionPattern]) -> bool:
    """Check the role's own table entries."""
    return any_matches(base_permissions(role), as_permission(permission))


def is_granted_by_hierarchy(role: Role, permission: Union[str, PermissionPattern]) -> bool:
    """Check permissions inherited from lower-authority roles."""
    return any_matches(hierarchy_permissions(role), as_permission(permission))


def permission_strings(permissions) -> FrozenSet[str]:
    """Render parsed permissions back to their canonical string form."""
    return frozenset(str(p) for p in permissions)
