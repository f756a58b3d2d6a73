"""
Dynamic Permission Manager

Time-limited, optionally resource-scoped permission grants issued
outside the static role table.

Lifecycle:
    ACTIVE  --revoke-->  REVOKED   (explicit, irreversible)
    ACTIVE  --time---->  EXPIRED   (detected on read or by sweep_expired)

A grant is in force while it is active, not revoked and not past its
expiry. Expiry is always computed from the clock, never cached.

Usage:
    grants = DynamicPermissionManager()
    outcome = grants.grant("u-1", "workflow:publish", "admin-1", "Launch week")
    if outcome:
        grants.revoke(outcome.value.id, "admin-1", "Launch over")
"""

import logging
import threading
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Union

from .context import EvaluationContext
from .permissions import InvalidPermissionError, PermissionPattern, matches, parse_permission
from .results import Outcome
from .roles import Role, parse_role

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# MODELS
# =============================================================================

@dataclass
class DynamicGrant:
    """A permission assigned to one user outside the role table."""

    id: str
    user_id: str
    permission: str
    pattern: PermissionPattern
    granted_by: str
    granted_at: datetime
    reason: str
    resource_id: Optional[str] = None
    role: Optional[Role] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True
    revoked_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def in_force(self, now: datetime) -> bool:
        return self.is_active and self.revoked_at is None and not self.is_expired(now)

    def applies_to(self, context: Optional[EvaluationContext]) -> bool:
        """Unscoped grants apply everywhere; scoped grants need a matching id."""
        if not self.resource_id:
            return True
        if context is None:
            return False
        return self.resource_id in (context.resource_id, context.actor_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "permission": self.permission,
            "resource_id": self.resource_id,
            "role": self.role.value if self.role else None,
            "granted_by": self.granted_by,
            "granted_at": self.granted_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "reason": self.reason,
            "is_active": self.is_active,
            "revoked_at": self.revoked_at.isoformat() if self.revoked_at else None,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class GrantRevocation:
    """Record of an explicit revocation. Exactly one per revoked grant."""

    id: str
    grant_id: str
    user_id: str
    permission: str
    revoked_by: str
    revoked_at: datetime
    reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "grant_id": self.grant_id,
            "user_id": self.user_id,
            "permission": self.permission,
            "revoked_by": self.revoked_by,
            "revoked_at": self.revoked_at.isoformat(),
            "reason": self.reason,
            "metadata": dict(self.metadata),
        }


@dataclass
class GrantStatistics:
    """Aggregate view over the grant store."""

    total_active: int
    total_expired: int
    by_role: Dict[str, int]
    by_permission: Dict[str, int]
    by_granter: Dict[str, int]
    recent_assignments: int
    recent_revocations: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_active": self.total_active,
            "total_expired": self.total_expired,
            "by_role": dict(self.by_role),
            "by_permission": dict(self.by_permission),
            "by_granter": dict(self.by_granter),
            "recent_assignments": self.recent_assignments,
            "recent_revocations": self.recent_revocations,
        }


# =============================================================================
# MANAGER
# =============================================================================

def _missing(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


class DynamicPermissionManager:
    """
    In-memory grant store with secondary indexes by user, role and permission.

    Thread-safe. Indexes only reference grants that were in force when last
    touched; revoked and swept grants are removed from them.
    """

    def __init__(self, clock: Optional[Clock] = None, statistics_window_days: int = 30):
        self._clock = clock or utcnow
        self._statistics_window = timedelta(days=statistics_window_days)

        self._grants: Dict[str, DynamicGrant] = {}
        self._revocations: Dict[str, GrantRevocation] = {}

        self._by_user: Dict[str, Set[str]] = {}
        self._by_role: Dict[Role, Set[str]] = {}
        self._by_permission: Dict[str, Set[str]] = {}

        self._lock = threading.RLock()

    def _now(self) -> datetime:
        return _aware(self._clock())

    # =========================================================================
    # GRANT / REVOKE
    # =========================================================================

    def grant(
        self,
        user_id: str,
        permission: str,
        granted_by: str,
        reason: str,
        resource_id: Optional[str] = None,
        role: Union[Role, str, None] = None,
        expires_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Outcome[DynamicGrant]:
        """
        Assign a permission to a user.

        Duplicate active grants for the same (user, permission, resource)
        are rejected rather than merged.

        Returns:
            Outcome with the new grant, or validation errors.
        """
        now = self._now()
        errors, pattern, resolved_role = self._validate(
            user_id, permission, granted_by, reason, role, expires_at, now
        )
        if errors:
            logger.warning(f"Rejected dynamic grant for user={user_id!r}: {errors}")
            return Outcome.fail("Validation failed", errors)

        canonical = str(pattern)
        with self._lock:
            if self._find_in_force(user_id, canonical, resource_id, now) is not None:
                return Outcome.fail("User already has an active assignment for this permission")

            grant = DynamicGrant(
                id=f"dyn_perm_{uuid.uuid4().hex[:16]}",
                user_id=user_id,
                permission=canonical,
                pattern=pattern,
                granted_by=granted_by,
                granted_at=now,
                reason=reason,
                resource_id=resource_id,
                role=resolved_role,
                expires_at=_aware(expires_at) if expires_at else None,
                metadata=dict(metadata or {}),
            )
            self._grants[grant.id] = grant
            self._index(grant)

        logger.info(
            f"Granted {canonical} to user={user_id} by={granted_by} "
            f"(grant={grant.id}, resource={resource_id}, expires={grant.expires_at})"
        )
        return Outcome.ok(grant)

    def revoke(
        self,
        grant_id: str,
        revoked_by: str,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Outcome[GrantRevocation]:
        """Revoke a grant. Fails if it does not exist or is already inactive."""
        errors = []
        if _missing(revoked_by):
            errors.append("Revoked by is required and must be a string")
        if _missing(reason):
            errors.append("Reason is required and must be a string")
        if errors:
            return Outcome.fail("Validation failed", errors)

        with self._lock:
            grant = self._grants.get(grant_id)
            if grant is None:
                return Outcome.fail("Assignment not found")
            if not grant.is_active or grant.revoked_at is not None:
                return Outcome.fail("Assignment is already inactive")

            now = self._now()
            revocation = GrantRevocation(
                id=f"dyn_rev_{uuid.uuid4().hex[:16]}",
                grant_id=grant.id,
                user_id=grant.user_id,
                permission=grant.permission,
                revoked_by=revoked_by,
                revoked_at=now,
                reason=reason,
                metadata=dict(metadata or {}),
            )
            grant.is_active = False
            grant.revoked_at = now
            self._revocations[revocation.id] = revocation
            self._unindex(grant)

        logger.info(f"Revoked grant={grant_id} ({grant.permission}) for user={grant.user_id} by={revoked_by}")
        return Outcome.ok(revocation)

    def revoke_all(
        self,
        user_id: str,
        revoked_by: str,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Outcome[GrantRevocation]]:
        """Revoke every indexed grant of a user."""
        with self._lock:
            grant_ids = sorted(self._by_user.get(user_id, set()))
        return [self.revoke(grant_id, revoked_by, reason, metadata) for grant_id in grant_ids]

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get(self, grant_id: str) -> Optional[DynamicGrant]:
        with self._lock:
            return self._grants.get(grant_id)

    def list_for_user(
        self, user_id: str, context: Optional[EvaluationContext] = None
    ) -> List[DynamicGrant]:
        """Grants in force for a user that apply to the given context."""
        now = self._now()
        with self._lock:
            grants = [self._grants[g] for g in self._by_user.get(user_id, ()) if g in self._grants]
        return self._applicable(grants, context, now)

    def list_for_role(
        self, role: Union[Role, str], context: Optional[EvaluationContext] = None
    ) -> List[DynamicGrant]:
        """Grants in force that were issued for a role."""
        resolved = parse_role(role)
        if resolved is None:
            return []
        now = self._now()
        with self._lock:
            grants = [self._grants[g] for g in self._by_role.get(resolved, ()) if g in self._grants]
        return self._applicable(grants, context, now)

    def find_matching(
        self,
        user_id: str,
        requested: PermissionPattern,
        context: Optional[EvaluationContext] = None,
    ) -> Optional[DynamicGrant]:
        """First grant in force for the user that satisfies the request."""
        for grant in self.list_for_user(user_id, context):
            if matches(grant.pattern, requested):
                return grant
        return None

    def is_expired(self, grant: DynamicGrant) -> bool:
        return grant.is_expired(self._now())

    def seconds_remaining(self, grant: DynamicGrant) -> Optional[float]:
        """Seconds until the grant expires, None when it never does."""
        if grant.expires_at is None:
            return None
        return max((grant.expires_at - self._now()).total_seconds(), 0.0)

    def get_assignments(
        self,
        user_id: Optional[str] = None,
        role: Union[Role, str, None] = None,
        permission: Optional[str] = None,
        resource_id: Optional[str] = None,
        granted_by: Optional[str] = None,
        is_active: Optional[bool] = None,
        is_expired: Optional[bool] = None,
        granted_after: Optional[datetime] = None,
        granted_before: Optional[datetime] = None,
        expires_after: Optional[datetime] = None,
        expires_before: Optional[datetime] = None,
    ) -> List[DynamicGrant]:
        """All grants (including revoked and expired), filtered."""
        now = self._now()
        with self._lock:
            if permission is not None:
                try:
                    permission = str(parse_permission(permission))
                except InvalidPermissionError:
                    return []
                ids = self._by_permission.get(permission)
                # Index holds live grants only; scan when inactive ones are wanted.
                candidates = (
                    [self._grants[i] for i in ids]
                    if ids is not None and is_active is True
                    else [g for g in self._grants.values() if g.permission == permission]
                )
            else:
                candidates = list(self._grants.values())

        resolved_role = parse_role(role) if role is not None else None
        results = []
        for grant in candidates:
            if user_id is not None and grant.user_id != user_id:
                continue
            if role is not None and grant.role != resolved_role:
                continue
            if resource_id is not None and grant.resource_id != resource_id:
                continue
            if granted_by is not None and grant.granted_by != granted_by:
                continue
            if is_active is not None and grant.is_active != is_active:
                continue
            if is_expired is not None and grant.is_expired(now) != is_expired:
                continue
            if granted_after is not None and grant.granted_at < _aware(granted_after):
                continue
            if granted_before is not None and grant.granted_at > _aware(granted_before):
                continue
            if expires_after is not None and (
                grant.expires_at is None or grant.expires_at < _aware(expires_after)
            ):
                continue
            if expires_before is not None and (
                grant.expires_at is None or grant.expires_at > _aware(expires_before)
            ):
                continue
            results.append(grant)

        results.sort(key=lambda g: g.granted_at)
        return results

    def get_revocations(self) -> List[GrantRevocation]:
        with self._lock:
            return sorted(self._revocations.values(), key=lambda r: r.revoked_at)

    def get_statistics(self) -> GrantStatistics:
        """Counts over the store; recent counts cover the statistics window."""
        now = self._now()
        since = now - self._statistics_window
        with self._lock:
            grants = list(self._grants.values())
            revocations = list(self._revocations.values())

        active = [g for g in grants if g.in_force(now)]
        by_role = {role.value: 0 for role in Role}
        for grant in active:
            if grant.role is not None:
                by_role[grant.role.value] += 1

        return GrantStatistics(
            total_active=len(active),
            total_expired=sum(1 for g in grants if g.is_expired(now)),
            by_role=by_role,
            by_permission=dict(Counter(g.permission for g in active)),
            by_granter=dict(Counter(g.granted_by for g in active)),
            recent_assignments=sum(1 for g in grants if g.granted_at >= since),
            recent_revocations=sum(1 for r in revocations if r.revoked_at >= since),
        )

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def sweep_expired(self) -> int:
        """Deactivate grants that expired while still marked active."""
        now = self._now()
        swept = 0
        with self._lock:
            for grant in self._grants.values():
                if grant.is_active and grant.is_expired(now):
                    grant.is_active = False
                    self._unindex(grant)
                    swept += 1
        if swept:
            logger.info(f"Deactivated {swept} expired dynamic grants")
        return swept

    def clear(self) -> None:
        with self._lock:
            self._grants.clear()
            self._revocations.clear()
            self._by_user.clear()
            self._by_role.clear()
            self._by_permission.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._grants)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _validate(self, user_id, permission, granted_by, reason, role, expires_at, now):
        errors: List[str] = []
        pattern = None
        resolved_role = None

        if _missing(user_id):
            errors.append("User ID is required and must be a string")
        if _missing(permission):
            errors.append("Permission is required and must be a string")
        else:
            try:
                pattern = parse_permission(permission)
            except InvalidPermissionError:
                errors.append("Permission has an invalid format")
        if _missing(granted_by):
            errors.append("Granted by is required and must be a string")
        if _missing(reason):
            errors.append("Reason is required and must be a string")

        if expires_at is not None:
            if not isinstance(expires_at, datetime):
                errors.append("Expires at must be a datetime")
            elif _aware(expires_at) <= now:
                errors.append("Expires at must be in the future")

        if role is not None:
            resolved_role = parse_role(role)
            if resolved_role is None:
                errors.append("Invalid user role")

        return errors, pattern, resolved_role

    def _find_in_force(self, user_id, permission, resource_id, now) -> Optional[DynamicGrant]:
        for grant_id in self._by_user.get(user_id, ()):
            grant = self._grants.get(grant_id)
            if (
                grant is not None
                and grant.in_force(now)
                and grant.permission == permission
                and grant.resource_id == resource_id
            ):
                return grant
        return None

    @staticmethod
    def _applicable(grants, context, now) -> List[DynamicGrant]:
        applicable = [g for g in grants if g.in_force(now) and g.applies_to(context)]
        applicable.sort(key=lambda g: g.granted_at)
        return applicable

    def _index(self, grant: DynamicGrant) -> None:
        self._by_user.setdefault(grant.user_id, set()).add(grant.id)
        if grant.role is not None:
            self._by_role.setdefault(grant.role, set()).add(grant.id)
        self._by_permission.setdefault(grant.permission, set()).add(grant.id)

    def _unindex(self, grant: DynamicGrant) -> None:
        for index, key in (
            (self._by_user, grant.user_id),
            (self._by_role, grant.role),
            (self._by_permission, grant.permission),
        ):
            if key is None:
                continue
            ids = index.get(key)
            if ids is None:
                continue
            ids.discard(grant.id)
            if not ids:
                del index[key]
