"""
Authorization Engine

Public entry point for authorization decisions. Every check runs the
same pipeline and stops at the first stage that grants:

    CacheCheck -> ContextRules -> RoleCheck -> DynamicCheck
               -> HierarchyCheck -> AdminOverride -> Deny

Each decision is cached (tagged for bulk invalidation) and audited once.
Denied high-risk actions additionally raise a security violation event.

Usage:
    engine = AuthorizationEngine()

    ctx = EvaluationContext(actor_id="u-1", actor_role=Role.EDITOR)
    result = await engine.evaluate(ctx, "products:create")
    if not result.granted:
        ...  # map to 403

    engine.grant("u-1", "workflow:publish", granted_by="admin-1", reason="Launch week")

Collaborators (grant store, cache, monitor) are injected; nothing here is
a module-level singleton.
"""

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Union,
)

from audit.exporters import ExportFormat, ExportOptions
from audit.filters import AuditFilters
from audit.entry import AuditEvent
from audit.risk import is_high_risk_action
from audit.security_monitor import AuditStatistics, SecurityMonitor
from cache.permission_cache import CachePriority, PermissionCache
from config.settings import Settings, get_settings

from .cache_policy import (
    DECISION_PREFIX,
    ROLE_PREFIX,
    decision_key,
    decision_priority,
    decision_tags,
    role_key,
    role_priority,
    role_tags,
    warm_entries,
)
from .context import EvaluationContext, ResourceType
from .context_rules import evaluate_context_rules, has_context_rules
from .dynamic_permissions import DynamicGrant, DynamicPermissionManager, GrantRevocation
from .permissions import InvalidPermissionError, PermissionPattern, requested_permission
from .results import DecisionSource, Outcome, PermissionResult
from .role_permissions import (
    base_permissions,
    hierarchy_permissions,
    is_granted_by_hierarchy,
    is_granted_by_role,
    permission_strings,
)
from .roles import Role, parse_role

logger = logging.getLogger(__name__)

# Distinguishes "not passed" from an explicit None grant store
_DEFAULT = object()

CheckRequest = Union[Tuple[str, Optional[str]], Mapping[str, Optional[str]], str]


def _as_check(request: CheckRequest) -> Tuple[str, Optional[str]]:
    if isinstance(request, str):
        return request, None
    if isinstance(request, Mapping):
        return request.get("action"), request.get("resource")
    action, resource = request
    return action, resource


def check_key(action: str, resource: Optional[str] = None) -> str:
    """Result key used by evaluate_many: ``action`` or ``action:resource``."""
    return f"{action}:{resource}" if resource else f"{action}"


class AuthorizationEngine:
    """
    Role- and context-aware authorization.

    Holds no global state: the grant store, cache and security monitor are
    owned by whoever builds the engine. Passing ``grants=None`` runs
    without dynamic permissions.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        grants: Optional[DynamicPermissionManager] = _DEFAULT,
        cache: Optional[PermissionCache] = None,
        monitor: Optional[SecurityMonitor] = None,
    ):
        """
        Initialize the engine.

        Args:
            settings: Application settings (defaults to get_settings())
            grants: Dynamic grant store; None disables dynamic permissions
            cache: Decision cache
            monitor: Audit trail and security monitor
        """
        self.settings = settings if settings is not None else get_settings()

        if grants is _DEFAULT:
            grants = DynamicPermissionManager(
                statistics_window_days=self.settings.grants.statistics_window_days
            )
        self.grants = grants

        # Caches and monitors are falsy while empty
        if cache is None:
            cache = PermissionCache(
                self.settings.cache,
                warming_enabled=self.settings.cache_warming_enabled,
            )
        self.cache = cache

        if monitor is None:
            monitor = SecurityMonitor(self.settings.audit)
        self.monitor = monitor

        if self.settings.cache_warming_enabled:
            self.warm_up()

        logger.info(
            f"AuthorizationEngine initialized (environment={self.settings.environment}, "
            f"dynamic_grants={'on' if self.grants is not None else 'off'})"
        )

    # =========================================================================
    # EVALUATION
    # =========================================================================

    async def evaluate(
        self,
        context: EvaluationContext,
        action: str,
        resource: Optional[str] = None,
    ) -> PermissionResult:
        """
        Decide whether the actor in ``context`` may perform ``action``.

        Never raises for bad input: malformed actions and unknown roles come
        back as denials with a reason.

        Raises:
            TypeError: If ``context`` is None.
        """
        return self.check(context, action, resource)

    def check(
        self,
        context: EvaluationContext,
        action: str,
        resource: Optional[str] = None,
    ) -> PermissionResult:
        """Synchronous form of evaluate()."""
        if context is None:
            raise TypeError("An evaluation context is required")

        started = time.perf_counter()
        key = decision_key(context, action, resource)

        cached = self.cache.get(key)
        if cached is not None:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.monitor.log_permission_check(
                context,
                action,
                resource,
                cached.granted,
                f"Cached result: {cached.reason}",
                self._audit_metadata(context, cached, True, elapsed_ms),
            )
            return cached.served(True, elapsed_ms)

        result = self._decide(context, action, resource)

        priority = decision_priority(context, action, result)
        self.cache.set(
            key,
            result,
            priority=priority,
            tags=decision_tags(context, action, resource),
            ttl=self._decision_ttl(result, priority),
        )

        elapsed_ms = (time.perf_counter() - started) * 1000
        self.monitor.log_permission_check(
            context,
            action,
            resource,
            result.granted,
            result.reason,
            self._audit_metadata(context, result, False, elapsed_ms),
        )
        return result.served(False, elapsed_ms)

    async def evaluate_many(
        self,
        context: EvaluationContext,
        checks: Iterable[CheckRequest],
    ) -> Dict[str, PermissionResult]:
        """
        Run several independent checks concurrently.

        Args:
            context: Request context shared by every check
            checks: ``(action, resource)`` tuples, ``{"action", "resource"}``
                mappings or bare action strings

        Returns:
            Results keyed by ``action`` or ``action:resource``.
        """
        requests = [_as_check(c) for c in checks]
        results = await asyncio.gather(
            *(self.evaluate(context, action, resource) for action, resource in requests)
        )
        return {
            check_key(action, resource): result
            for (action, resource), result in zip(requests, results)
        }

    async def can_perform_action(
        self,
        context: EvaluationContext,
        action: str,
        resource_id: Optional[str] = None,
    ) -> PermissionResult:
        """Check an action against a specific resource id."""
        return await self.evaluate(context.with_overrides(resource_id=resource_id), action)

    async def can_access_product(
        self,
        context: EvaluationContext,
        product_id: str,
        action: str = "read",
    ) -> PermissionResult:
        """Check an action on one product."""
        scoped = context.with_overrides(resource_id=product_id, resource_type=ResourceType.PRODUCT)
        return await self.evaluate(scoped, action, "products")

    async def can_manage_user(
        self,
        context: EvaluationContext,
        target_user_id: str,
        action: str = "manage_users",
    ) -> PermissionResult:
        """Check a user-management action against another user."""
        scoped = context.with_overrides(
            target_user_id=target_user_id, resource_type=ResourceType.USER
        )
        return await self.evaluate(scoped, action, "users")

    # =========================================================================
    # DECISION PIPELINE
    # =========================================================================

    def _decide(
        self,
        context: EvaluationContext,
        action: str,
        resource: Optional[str],
    ) -> PermissionResult:
        role = parse_role(context.actor_role)
        if role is None:
            logger.warning(
                f"Denying {action!r} for user={context.actor_id}: "
                f"unrecognized role {context.role_value!r}"
            )
            return PermissionResult.deny(
                f"Permission denied: unrecognized role '{context.role_value}'"
            )

        try:
            requested = requested_permission(action, resource)
        except InvalidPermissionError as e:
            logger.warning(f"Denying malformed permission request from user={context.actor_id}: {e}")
            return PermissionResult.deny(f"Permission denied: invalid permission '{action}'")

        # Ownership and assignment only apply when the caller supplied them
        if has_context_rules(context):
            result = evaluate_context_rules(context, action)
            if result is not None:
                return result

        if self._role_allows(role, requested):
            return PermissionResult.allow(
                f"Permission granted by {role.value} role", DecisionSource.ROLE
            )

        grant = self._find_dynamic(context, requested)
        if grant is not None:
            return PermissionResult.allow(
                f"Permission granted by dynamic assignment: {grant.reason}",
                DecisionSource.DYNAMIC,
                assignment_id=grant.id,
                granted_by=grant.granted_by,
                granted_at=grant.granted_at.isoformat(),
                expires_at=grant.expires_at.isoformat() if grant.expires_at else None,
            )

        if is_granted_by_hierarchy(role, requested):
            return PermissionResult.allow(
                "Permission granted by role hierarchy", DecisionSource.HIERARCHY
            )

        result = evaluate_context_rules(context, action, include_admin_override=True)
        if result is not None:
            return result

        reason = f"Permission denied: {action} not allowed for {role.value} role"
        if is_high_risk_action(action):
            self.monitor.log_security_violation(
                context,
                action,
                resource,
                f"Unauthorized access attempt to {action} by {role.value}",
                {"denied_reason": reason},
            )
        return PermissionResult.deny(reason)

    def _role_allows(self, role: Role, requested: PermissionPattern) -> bool:
        """Role-table lookup through the shared ``role:`` cache entries."""
        key = role_key(role, requested)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        allowed = is_granted_by_role(role, requested)
        self.cache.set(
            key,
            allowed,
            priority=role_priority(role, requested),
            tags=role_tags(role, requested),
        )
        return allowed

    def _find_dynamic(
        self, context: EvaluationContext, requested: PermissionPattern
    ) -> Optional[DynamicGrant]:
        if self.grants is None:
            return None
        return self.grants.find_matching(context.actor_id, requested, context)

    def _decision_ttl(self, result: PermissionResult, priority: CachePriority) -> Optional[float]:
        """Cap a dynamically granted decision at the time its grant has left."""
        if result.source != DecisionSource.DYNAMIC or self.grants is None:
            return None
        grant = self.grants.get(result.metadata.get("assignment_id"))
        remaining = self.grants.seconds_remaining(grant) if grant is not None else None
        if remaining is None:
            return None
        return min(self.cache.ttl_for(priority), remaining)

    @staticmethod
    def _audit_metadata(
        context: EvaluationContext,
        result: PermissionResult,
        cached: bool,
        elapsed_ms: float,
    ) -> Dict[str, Any]:
        metadata = {
            "cached": cached,
            "response_time_ms": round(elapsed_ms, 3),
            "source": result.source.value,
        }
        for name, value in context.to_dict().items():
            if name.startswith("actor_") or value is None:
                continue
            metadata[name] = value
        return metadata

    # =========================================================================
    # PERMISSION INTROSPECTION
    # =========================================================================

    def get_role_permissions(self, role: Union[Role, str]) -> FrozenSet[str]:
        """Permissions granted directly to a role."""
        resolved = parse_role(role)
        if resolved is None:
            return frozenset()
        return permission_strings(base_permissions(resolved))

    def hierarchy_permissions(self, role: Union[Role, str]) -> FrozenSet[str]:
        """Permissions a role inherits from roles with less authority."""
        resolved = parse_role(role)
        if resolved is None:
            return frozenset()
        return permission_strings(hierarchy_permissions(resolved))

    def effective_permissions(
        self,
        context: EvaluationContext,
        include_dynamic: bool = True,
        include_hierarchy: bool = True,
    ) -> Set[str]:
        """
        Everything the actor holds: base role permissions, optionally
        inherited ones, and optionally dynamic grants in force for this
        context.
        """
        permissions = set(self.get_role_permissions(context.actor_role))
        if include_hierarchy:
            permissions.update(self.hierarchy_permissions(context.actor_role))
        if include_dynamic and self.grants is not None:
            permissions.update(g.permission for g in self.grants.list_for_user(context.actor_id, context))
        return permissions

    # =========================================================================
    # DYNAMIC GRANTS
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
        user_email: str = "",
    ) -> Outcome[DynamicGrant]:
        """
        Issue a dynamic grant, drop the user's cached decisions and audit it.

        Returns:
            Outcome with the grant, or the validation failure.
        """
        if self.grants is None:
            return Outcome.fail("Dynamic permission store is not configured")

        outcome = self.grants.grant(
            user_id,
            permission,
            granted_by,
            reason,
            resource_id=resource_id,
            role=role,
            expires_at=expires_at,
            metadata=metadata,
        )
        if not outcome:
            return outcome

        grant = outcome.value
        self.clear_user_cache(user_id)
        self.monitor.log_dynamic_permission_assigned(
            user_id=user_id,
            user_role=grant.role.value if grant.role else "unknown",
            permission=grant.permission,
            granted_by=granted_by,
            reason=reason,
            user_email=user_email,
            metadata={"grant_id": grant.id, "resource_id": resource_id, **(metadata or {})},
        )
        return outcome

    def revoke(
        self,
        grant_id: str,
        revoked_by: str,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_email: str = "",
    ) -> Outcome[GrantRevocation]:
        """Revoke a dynamic grant, drop the user's cached decisions and audit it."""
        if self.grants is None:
            return Outcome.fail("Dynamic permission store is not configured")

        outcome = self.grants.revoke(grant_id, revoked_by, reason, metadata)
        if not outcome:
            return outcome

        revocation = outcome.value
        grant = self.grants.get(revocation.grant_id)
        self.clear_user_cache(revocation.user_id)
        self.monitor.log_dynamic_permission_revoked(
            user_id=revocation.user_id,
            user_role=grant.role.value if grant and grant.role else "unknown",
            permission=revocation.permission,
            revoked_by=revoked_by,
            reason=reason,
            user_email=user_email,
            metadata={"grant_id": revocation.grant_id, **(metadata or {})},
        )
        return outcome

    def revoke_all(
        self,
        user_id: str,
        revoked_by: str,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Outcome[GrantRevocation]]:
        """Revoke every active grant a user holds."""
        if self.grants is None:
            return []
        active = self.grants.get_assignments(user_id=user_id, is_active=True)
        return [self.revoke(g.id, revoked_by, reason, metadata) for g in active]

    def user_grants(
        self, user_id: str, context: Optional[EvaluationContext] = None
    ) -> List[DynamicGrant]:
        """Grants in force for a user, narrowed to ``context`` when given."""
        if self.grants is None:
            return []
        return self.grants.list_for_user(user_id, context)

    # =========================================================================
    # CACHE
    # =========================================================================

    def warm_up(self) -> int:
        """Seed role x common-permission lookups. Returns entries stored."""
        return self.cache.warm(warm_entries(is_granted_by_role))

    def clear_cache(self) -> None:
        self.cache.clear()

    def clear_user_cache(self, user_id: str) -> int:
        """Drop every cached decision about one user."""
        removed = self.cache.invalidate_by_tag(f"user:{user_id}")
        logger.debug(f"Cleared {removed} cached decisions for user={user_id}")
        return removed

    def get_cache_stats(self) -> Dict[str, Any]:
        """
        Counters for the shared decision cache.

        Hits and misses combine both key spaces: every cold decision looks
        up its ``perm:`` key and then its ``role:`` key, so it counts two
        misses. ``role_lookups`` and ``decisions`` give the entry counts
        per key space.
        """
        stats = self.cache.get_statistics().to_dict()
        stats["role_lookups"] = self.cache.count_prefix(ROLE_PREFIX)
        stats["decisions"] = self.cache.count_prefix(DECISION_PREFIX)
        return stats

    # =========================================================================
    # AUDIT
    # =========================================================================

    def audit_query(self, filters: Optional[AuditFilters] = None, **criteria: Any) -> List[AuditEvent]:
        return self.monitor.query(filters, **criteria)

    def audit_statistics(self) -> AuditStatistics:
        return self.monitor.statistics()

    def audit_export(
        self,
        format: Union[ExportFormat, str, ExportOptions, None] = None,
        options: Optional[ExportOptions] = None,
    ) -> bytes:
        """
        Export the audit trail as UTF-8 encoded bytes.

        Args:
            format: Output format; overrides ``options.format`` when given.
                An ExportOptions instance is accepted here as well.
            options: Date range, filters and optional sections

        Raises:
            ValueError: If the format is not supported.
        """
        if isinstance(format, ExportOptions):
            format, options = None, format
        if options is None:
            options = ExportOptions()
        if format is not None:
            options = replace(options, format=format)
        return self.monitor.export(options).encode("utf-8")
