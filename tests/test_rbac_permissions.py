"""
RBAC Permission System Tests

Tests for roles, the role capability table, hierarchy inheritance and
the context rules (ownership, assignment, admin override).
"""

import pytest

from rbac.context import EvaluationContext, WorkflowState
from rbac.context_rules import (
    check_admin_override,
    check_assignment,
    check_ownership,
    evaluate_context_rules,
    has_context_rules,
)
from rbac.permissions import GlobalWildcard, parse_permission
from rbac.results import DecisionSource
from rbac.role_permissions import (
    ROLE_PERMISSIONS,
    base_permissions,
    hierarchy_permissions,
    is_granted_by_hierarchy,
    is_granted_by_role,
    permission_strings,
)
from rbac.roles import (
    CONTENT_ROLES,
    REVIEW_ROLES,
    ROLES,
    Level,
    Role,
    get_role_info,
    parse_role,
    roles_below,
)


# =============================================================================
# ROLE DEFINITION TESTS
# =============================================================================

class TestRoleDefinitions:
    """Test role structure and levels"""

    def test_every_role_has_info(self):
        """Every role should have metadata"""
        assert set(ROLES) == set(Role)

    def test_admin_is_level_one(self):
        """Admin should hold the most authority"""
        assert get_role_info(Role.ADMIN).level == Level.ADMIN == 1
        assert get_role_info(Role.ADMIN).is_admin

    def test_editor_and_reviewer_are_siblings(self):
        """Editor and Reviewer share a level"""
        assert get_role_info(Role.EDITOR).level == get_role_info(Role.REVIEWER).level

    def test_viewer_is_lowest(self):
        assert get_role_info(Role.VIEWER).level == max(info.level for info in ROLES.values())

    def test_roles_below(self):
        """Only strictly lower-authority roles are returned"""
        assert roles_below(Role.ADMIN) == {Role.EDITOR, Role.REVIEWER, Role.VIEWER}
        assert roles_below(Role.EDITOR) == {Role.VIEWER}
        assert roles_below(Role.REVIEWER) == {Role.VIEWER}
        assert roles_below(Role.VIEWER) == frozenset()

    @pytest.mark.parametrize("value,expected", [
        ("admin", Role.ADMIN),
        (" Editor ", Role.EDITOR),
        (Role.REVIEWER, Role.REVIEWER),
        ("superuser", None),
        ("", None),
        (None, None),
        (42, None),
    ])
    def test_parse_role(self, value, expected):
        """Unknown values resolve to None instead of raising"""
        assert parse_role(value) == expected

    def test_role_sets(self):
        assert CONTENT_ROLES == {Role.ADMIN, Role.EDITOR}
        assert REVIEW_ROLES == {Role.ADMIN, Role.REVIEWER}


# =============================================================================
# ROLE TABLE TESTS
# =============================================================================

class TestRoleTable:
    """Test the static role -> permission mapping"""

    def test_admin_holds_global_wildcard(self):
        assert GlobalWildcard() in base_permissions(Role.ADMIN)

    def test_admin_granted_anything(self):
        """Admin's wildcard grants arbitrary permissions"""
        assert is_granted_by_role(Role.ADMIN, "any:action")
        assert is_granted_by_role(Role.ADMIN, "products:delete")

    def test_viewer_is_read_only(self):
        """Viewer must not create, write or delete"""
        assert is_granted_by_role(Role.VIEWER, "products:read")
        assert not is_granted_by_role(Role.VIEWER, "products:create")
        assert not is_granted_by_role(Role.VIEWER, "products:write")
        assert not is_granted_by_role(Role.VIEWER, "products:delete")

    def test_editor_cannot_publish_or_approve(self):
        """Editor authors content but does not approve or publish"""
        assert is_granted_by_role(Role.EDITOR, "products:create")
        assert not is_granted_by_role(Role.EDITOR, "workflow:approve")
        assert not is_granted_by_role(Role.EDITOR, "workflow:publish")
        assert not is_granted_by_role(Role.EDITOR, "publish")

    def test_reviewer_approves(self):
        assert is_granted_by_role(Role.REVIEWER, "workflow:approve")
        assert is_granted_by_role(Role.REVIEWER, "workflow:reject")
        assert not is_granted_by_role(Role.REVIEWER, "products:create")

    def test_bare_action_request_matches_table(self):
        """A bare request matches any table entry with the same action"""
        assert is_granted_by_role(Role.REVIEWER, "approve")

    def test_table_is_parsed(self):
        """Every entry should already be in structural form"""
        for permissions in ROLE_PERMISSIONS.values():
            for permission in permissions:
                assert parse_permission(str(permission)) == permission

    def test_permission_strings(self):
        strings = permission_strings(base_permissions(Role.VIEWER))
        assert "products:read" in strings
        assert all(isinstance(s, str) for s in strings)


# =============================================================================
# HIERARCHY TESTS
# =============================================================================

class TestHierarchy:
    """Test hierarchy inheritance direction"""

    def test_editor_inherits_from_viewer(self):
        assert is_granted_by_hierarchy(Role.EDITOR, "products:read")

    def test_viewer_inherits_nothing(self):
        assert hierarchy_permissions(Role.VIEWER) == frozenset()
        assert not is_granted_by_hierarchy(Role.VIEWER, "products:create")

    def test_siblings_do_not_inherit(self):
        """Editor and Reviewer never inherit each other's permissions"""
        assert not is_granted_by_hierarchy(Role.EDITOR, "workflow:approve")
        assert not is_granted_by_hierarchy(Role.REVIEWER, "products:create")

    def test_admin_inherits_from_everyone(self):
        inherited = hierarchy_permissions(Role.ADMIN)
        for role in (Role.EDITOR, Role.REVIEWER, Role.VIEWER):
            assert base_permissions(role) <= inherited

    def test_inheritance_only_from_lower_roles(self):
        """Inherited permissions come only from roles with less authority"""
        assert hierarchy_permissions(Role.EDITOR) == base_permissions(Role.VIEWER)
        assert hierarchy_permissions(Role.REVIEWER) == base_permissions(Role.VIEWER)
        assert GlobalWildcard() not in hierarchy_permissions(Role.EDITOR)

    def test_viewer_permissions_reachable_by_editor(self):
        for permission in base_permissions(Role.VIEWER):
            assert is_granted_by_hierarchy(Role.EDITOR, permission)


# =============================================================================
# CONTEXT RULE TESTS
# =============================================================================

@pytest.fixture
def draft_owned():
    return EvaluationContext.for_product(
        actor_id="editor-1",
        actor_role=Role.EDITOR,
        product_id="p-1",
        owner_id="editor-1",
        state=WorkflowState.DRAFT,
    )


@pytest.fixture
def review_assigned():
    return EvaluationContext.for_product(
        actor_id="reviewer-1",
        actor_role=Role.REVIEWER,
        product_id="p-1",
        owner_id="editor-1",
        assigned_reviewer_id="reviewer-1",
        state=WorkflowState.REVIEW,
    )


class TestOwnershipRule:
    """Tests for the draft ownership rule"""

    def test_owner_can_edit_draft(self, draft_owned):
        result = check_ownership(draft_owned, "products:write")
        assert result.granted
        assert result.source == DecisionSource.OWNERSHIP

    def test_owner_cannot_edit_outside_draft(self, draft_owned):
        ctx = draft_owned.with_overrides(current_state=WorkflowState.REVIEW)
        assert check_ownership(ctx, "products:write") is None

    def test_non_owner(self, draft_owned):
        ctx = draft_owned.with_overrides(resource_owner_id="someone-else")
        assert check_ownership(ctx, "products:write") is None

    def test_non_edit_action(self, draft_owned):
        assert check_ownership(draft_owned, "products:delete") is None

    def test_state_as_string(self, draft_owned):
        """A plain string state should be normalized"""
        ctx = draft_owned.with_overrides(current_state="DRAFT")
        assert check_ownership(ctx, "edit") is not None


class TestAssignmentRule:
    """Tests for the assigned reviewer rule"""

    @pytest.mark.parametrize("action", ["approve", "reject", "workflow:approve", "workflow:reject"])
    def test_assigned_reviewer_can_decide(self, review_assigned, action):
        result = check_assignment(review_assigned, action)
        assert result.granted
        assert result.source == DecisionSource.ASSIGNMENT

    def test_requires_review_state(self, review_assigned):
        ctx = review_assigned.with_overrides(current_state=WorkflowState.DRAFT)
        assert check_assignment(ctx, "approve") is None

    def test_requires_assignment(self, review_assigned):
        ctx = review_assigned.with_overrides(assigned_actor_id="reviewer-2")
        assert check_assignment(ctx, "approve") is None

    def test_other_actions(self, review_assigned):
        assert check_assignment(review_assigned, "publish") is None


class TestAdminOverride:
    """Tests for the admin catch-all"""

    def test_admin(self, admin_context):
        result = check_admin_override(admin_context)
        assert result.granted
        assert result.source == DecisionSource.ADMIN_OVERRIDE

    def test_non_admin(self, editor_context):
        assert check_admin_override(editor_context) is None

    def test_only_included_on_request(self, admin_context):
        assert evaluate_context_rules(admin_context, "anything") is None
        assert evaluate_context_rules(admin_context, "anything", include_admin_override=True) is not None


class TestHasContextRules:
    """Tests for has_context_rules"""

    def test_without_inputs(self, editor_context):
        assert not has_context_rules(editor_context)

    def test_with_owner(self, draft_owned):
        assert has_context_rules(draft_owned)
