"""
Context Rule Evaluator

Overrides keyed on request context rather than on the role table:

- Ownership: the owner of a draft may edit it.
- Assignment: the reviewer assigned to a product in review may approve
  or reject it.
- Admin override: admins are granted anything, checked last.
"""

import logging
from typing import Optional

from .context import EvaluationContext, WorkflowState
from .results import DecisionSource, PermissionResult
from .roles import Role, parse_role

logger = logging.getLogger(__name__)


EDIT_ACTIONS = frozenset({"products:write", "workflow:edit", "edit"})
"""Actions the ownership rule covers."""

REVIEW_ACTIONS = frozenset({"workflow:approve", "workflow:reject", "approve", "reject"})
"""Actions the assignment rule covers."""


def _state(context: EvaluationContext) -> Optional[WorkflowState]:
    state = context.current_state
    if state is None or isinstance(state, WorkflowState):
        return state
    try:
        return WorkflowState(str(state).lower())
    except ValueError:
        return None


def _normalize(action: str) -> str:
    return action.strip().lower() if isinstance(action, str) else ""


def check_ownership(context: EvaluationContext, action: str) -> Optional[PermissionResult]:
    """Grant edit-class actions to the owner of a draft."""
    if not context.resource_owner_id or context.resource_owner_id != context.actor_id:
        return None
    if _state(context) != WorkflowState.DRAFT:
        return None
    if _normalize(action) not in EDIT_ACTIONS:
        return None
    return PermissionResult.allow("Product owner can edit draft products", DecisionSource.OWNERSHIP)


def check_assignment(context: EvaluationContext, action: str) -> Optional[PermissionResult]:
    """Grant approve/reject to the assigned reviewer while in review."""
    if not context.assigned_actor_id or context.assigned_actor_id != context.actor_id:
        return None
    if _state(context) != WorkflowState.REVIEW:
        return None
    if _normalize(action) not in REVIEW_ACTIONS:
        return None
    return PermissionResult.allow(
        "Assigned reviewer can approve/reject products in review",
        DecisionSource.ASSIGNMENT,
    )


def check_admin_override(context: EvaluationContext) -> Optional[PermissionResult]:
    """Admins pass every check."""
    if parse_role(context.actor_role) != Role.ADMIN:
        return None
    return PermissionResult.allow("Admin has override permissions", DecisionSource.ADMIN_OVERRIDE)


def has_context_rules(context: EvaluationContext) -> bool:
    """Ownership/assignment rules only apply when the caller supplied their inputs."""
    return bool(context.resource_owner_id or context.assigned_actor_id)


def evaluate_context_rules(
    context: EvaluationContext,
    action: str,
    include_admin_override: bool = False,
) -> Optional[PermissionResult]:
    """
    Run the context rules in order.

    Args:
        context: Request context
        action: Action as supplied by the caller
        include_admin_override: Also apply the admin catch-all

    Returns:
        The first granting result, or None when no rule applies.
    """
    result = check_ownership(context, action) or check_assignment(context, action)
    if result is None and include_admin_override:
        result = check_admin_override(context)
    if result is not None:
        logger.debug(
            f"Context rule {result.source.value} granted {action} to {context.actor_id}"
        )
    return result
