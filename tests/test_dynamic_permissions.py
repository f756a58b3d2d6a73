"""Tests for the dynamic permission manager."""

from datetime import datetime, timedelta, timezone

import pytest

from rbac.context import EvaluationContext
from rbac.dynamic_permissions import DynamicPermissionManager
from rbac.permissions import BareAction, Exact
from rbac.roles import Role


class TestGrantValidation:
    """Tests for grant input validation."""

    @pytest.mark.parametrize("field,message", [
        ("user_id", "User ID is required and must be a string"),
        ("permission", "Permission is required and must be a string"),
        ("granted_by", "Granted by is required and must be a string"),
        ("reason", "Reason is required and must be a string"),
    ])
    def test_required_fields(self, grants, field, message):
        """Should fail validation for each empty required field."""
        kwargs = dict(user_id="u-1", permission="workflow:publish", granted_by="admin-1", reason="Launch")
        kwargs[field] = "  "

        outcome = grants.grant(**kwargs)

        assert not outcome.success
        assert outcome.error == "Validation failed"
        assert message in outcome.validation_errors

    def test_expiry_must_be_in_future(self, grants, clock):
        """Should reject an expiry at or before now."""
        outcome = grants.grant("u-1", "workflow:publish", "admin-1", "Launch", expires_at=clock.now)

        assert not outcome
        assert "Expires at must be in the future" in outcome.validation_errors

    def test_invalid_role(self, grants):
        outcome = grants.grant("u-1", "workflow:publish", "admin-1", "Launch", role="superuser")
        assert "Invalid user role" in outcome.validation_errors

    def test_invalid_permission_format(self, grants):
        outcome = grants.grant("u-1", "workflow:publish:now", "admin-1", "Launch")
        assert "Permission has an invalid format" in outcome.validation_errors

    def test_never_raises(self, grants):
        """Non-string input should come back as validation errors."""
        outcome = grants.grant(None, None, None, None)
        assert not outcome
        assert len(outcome.validation_errors) == 4


class TestGrant:
    """Tests for successful grants."""

    def test_creates_active_grant(self, grants, clock):
        outcome = grants.grant("u-1", "Workflow:Publish", "admin-1", "Launch", role=Role.EDITOR)

        assert outcome.success
        grant = outcome.value
        assert grant.id.startswith("dyn_perm_")
        assert grant.permission == "workflow:publish"
        assert grant.pattern == Exact("workflow", "publish")
        assert grant.granted_at == clock.now
        assert grant.role == Role.EDITOR
        assert grant.is_active
        assert len(grants) == 1

    def test_duplicate_active_grant_rejected(self, grants):
        """Should reject rather than merge a duplicate."""
        grants.grant("u-1", "workflow:publish", "admin-1", "Launch")
        outcome = grants.grant("u-1", "workflow:publish", "admin-2", "Again")

        assert not outcome
        assert outcome.error == "User already has an active assignment for this permission"
        assert len(grants) == 1

    def test_same_permission_different_resource_allowed(self, grants):
        assert grants.grant("u-1", "products:write", "admin-1", "P1", resource_id="p-1")
        assert grants.grant("u-1", "products:write", "admin-1", "P2", resource_id="p-2")

    def test_regrant_after_revoke(self, grants):
        first = grants.grant("u-1", "workflow:publish", "admin-1", "Launch").value
        grants.revoke(first.id, "admin-1", "Done")

        assert grants.grant("u-1", "workflow:publish", "admin-1", "Launch again")

    def test_naive_expiry_treated_as_utc(self, grants, clock):
        naive = (clock.now + timedelta(hours=1)).replace(tzinfo=None)
        grant = grants.grant("u-1", "workflow:publish", "admin-1", "Launch", expires_at=naive).value
        assert grant.expires_at.tzinfo is not None


class TestRevoke:
    """Tests for revocation."""

    def test_revoke(self, grants, clock):
        grant = grants.grant("u-1", "workflow:publish", "admin-1", "Launch").value

        outcome = grants.revoke(grant.id, "admin-2", "Launch over")

        assert outcome.success
        revocation = outcome.value
        assert revocation.id.startswith("dyn_rev_")
        assert revocation.grant_id == grant.id
        assert revocation.user_id == "u-1"
        assert revocation.permission == "workflow:publish"
        assert revocation.revoked_at == clock.now
        assert not grant.is_active
        assert grant.revoked_at == clock.now

    def test_revoke_twice_fails(self, grants):
        grant = grants.grant("u-1", "workflow:publish", "admin-1", "Launch").value
        grants.revoke(grant.id, "admin-1", "Done")

        outcome = grants.revoke(grant.id, "admin-1", "Done again")

        assert outcome.error == "Assignment is already inactive"
        assert len(grants.get_revocations()) == 1

    def test_revoke_unknown(self, grants):
        assert grants.revoke("dyn_perm_missing", "admin-1", "Done").error == "Assignment not found"

    def test_revoke_requires_reason(self, grants):
        grant = grants.grant("u-1", "workflow:publish", "admin-1", "Launch").value
        outcome = grants.revoke(grant.id, "admin-1", "")
        assert "Reason is required and must be a string" in outcome.validation_errors
        assert grant.is_active

    def test_revoke_all(self, grants):
        grants.grant("u-1", "workflow:publish", "admin-1", "A")
        grants.grant("u-1", "workflow:approve", "admin-1", "B")
        grants.grant("u-2", "workflow:approve", "admin-1", "C")

        results = grants.revoke_all("u-1", "admin-1", "Offboarding")

        assert len(results) == 2
        assert all(r.success for r in results)
        assert grants.list_for_user("u-1") == []
        assert len(grants.list_for_user("u-2")) == 1


class TestListing:
    """Tests for lookups and context filtering."""

    def test_unscoped_grant_applies_everywhere(self, grants):
        grants.grant("u-1", "workflow:publish", "admin-1", "Launch")
        ctx = EvaluationContext(actor_id="u-1", actor_role=Role.EDITOR, resource_id="p-9")

        assert len(grants.list_for_user("u-1", ctx)) == 1

    def test_scoped_grant_requires_matching_resource(self, grants):
        grants.grant("u-1", "products:write", "admin-1", "P1", resource_id="p-1")

        matching = EvaluationContext(actor_id="u-1", actor_role=Role.EDITOR, resource_id="p-1")
        other = EvaluationContext(actor_id="u-1", actor_role=Role.EDITOR, resource_id="p-2")

        assert len(grants.list_for_user("u-1", matching)) == 1
        assert grants.list_for_user("u-1", other) == []
        assert grants.list_for_user("u-1") == []

    def test_expired_grants_not_listed(self, grants, clock):
        grants.grant(
            "u-1", "workflow:publish", "admin-1", "Launch",
            expires_at=clock.now + timedelta(minutes=5),
        )
        clock.advance(minutes=6)

        assert grants.list_for_user("u-1") == []

    def test_list_for_role(self, grants):
        grants.grant("u-1", "workflow:publish", "admin-1", "A", role=Role.EDITOR)
        grants.grant("u-2", "workflow:publish", "admin-1", "B", role="reviewer")

        assert [g.user_id for g in grants.list_for_role(Role.EDITOR)] == ["u-1"]
        assert grants.list_for_role("nobody") == []

    def test_find_matching_bare_request(self, grants):
        grant = grants.grant("u-1", "workflow:publish", "admin-1", "Launch").value
        assert grants.find_matching("u-1", BareAction("publish")) is grant
        assert grants.find_matching("u-1", Exact("workflow", "approve")) is None


class TestExpiry:
    """Tests for computed expiry and sweeping."""

    def test_is_expired_is_computed(self, grants, clock):
        grant = grants.grant(
            "u-1", "workflow:publish", "admin-1", "Launch",
            expires_at=clock.now + timedelta(hours=1),
        ).value

        assert not grants.is_expired(grant)
        clock.advance(hours=1)
        assert grants.is_expired(grant)
        # Still flagged active until swept
        assert grant.is_active

    def test_sweep_expired(self, grants, clock):
        grants.grant("u-1", "workflow:publish", "admin-1", "A", expires_at=clock.now + timedelta(minutes=1))
        grants.grant("u-2", "workflow:publish", "admin-1", "B", expires_at=clock.now + timedelta(days=1))
        grants.grant("u-3", "workflow:publish", "admin-1", "C")
        clock.advance(minutes=2)

        assert grants.sweep_expired() == 1
        assert grants.sweep_expired() == 0
        assert len(grants.get_assignments(is_active=True)) == 2

    def test_expired_grant_can_be_reissued(self, grants, clock):
        grants.grant("u-1", "workflow:publish", "admin-1", "A", expires_at=clock.now + timedelta(minutes=1))
        clock.advance(minutes=2)
        assert grants.grant("u-1", "workflow:publish", "admin-1", "B")


class TestAssignmentsAndStatistics:
    """Tests for filtered listing and statistics."""

    @pytest.fixture
    def populated(self, grants, clock):
        grants.grant("u-1", "workflow:publish", "admin-1", "A", role=Role.EDITOR)
        clock.advance(hours=1)
        grants.grant("u-2", "workflow:approve", "admin-2", "B", role=Role.VIEWER,
                     expires_at=clock.now + timedelta(hours=2))
        clock.advance(hours=1)
        revoked = grants.grant("u-3", "workflow:publish", "admin-1", "C").value
        grants.revoke(revoked.id, "admin-1", "No longer needed")
        return grants

    def test_filter_by_permission(self, populated):
        assert len(populated.get_assignments(permission="workflow:publish")) == 2
        assert len(populated.get_assignments(permission="workflow:publish", is_active=True)) == 1

    def test_filter_by_granter_and_user(self, populated):
        assert [g.user_id for g in populated.get_assignments(granted_by="admin-2")] == ["u-2"]
        assert [g.user_id for g in populated.get_assignments(user_id="u-1")] == ["u-1"]

    def test_filter_by_dates(self, populated, clock):
        start = clock.now - timedelta(hours=2)
        assert len(populated.get_assignments(granted_after=start + timedelta(minutes=30))) == 2
        assert len(populated.get_assignments(expires_before=clock.now + timedelta(days=1))) == 1

    def test_filter_by_expired(self, populated, clock):
        clock.advance(hours=1)
        assert [g.user_id for g in populated.get_assignments(is_expired=True)] == ["u-2"]

    def test_statistics(self, populated):
        stats = populated.get_statistics()

        assert stats.total_active == 2
        assert stats.total_expired == 0
        assert stats.by_role["editor"] == 1
        assert stats.by_role["viewer"] == 1
        assert stats.by_role["admin"] == 0
        assert stats.by_permission == {"workflow:publish": 1, "workflow:approve": 1}
        assert stats.recent_assignments == 3
        assert stats.recent_revocations == 1

    def test_statistics_window(self, populated, clock):
        clock.advance(days=31)
        stats = populated.get_statistics()
        assert stats.recent_assignments == 0
        assert stats.recent_revocations == 0

    def test_clear(self, populated):
        populated.clear()
        assert len(populated) == 0
        assert populated.get_revocations() == []


class TestClock:
    """Tests for clock handling."""

    def test_naive_clock_treated_as_utc(self):
        manager = DynamicPermissionManager(clock=lambda: datetime(2024, 1, 1, 12, 0))
        grant = manager.grant("u-1", "workflow:publish", "admin-1", "Launch").value
        assert grant.granted_at.tzinfo == timezone.utc
