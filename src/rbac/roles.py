"""
Role Definitions

4 roles organized by authority level (smaller level = more authority):

    ADMIN (Level 1)      - Full system access
    ├── EDITOR (Level 2)   - Creates and edits products, submits for review
    ├── REVIEWER (Level 2) - Approves and rejects products in review
    └── VIEWER (Level 3)   - Read-only access to published content

Editor and Reviewer share a level: neither inherits the other's
permissions, while both inherit everything a Viewer can do.
"""

from enum import Enum, IntEnum
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Union


class Role(str, Enum):
    """
    All roles in the system.

    Naming convention: UPPER_SNAKE_CASE for enum, lower_snake_case for value.
    """

    ADMIN = "admin"
    """
    Full system access. Can do anything.
    Who: System administrators
    """

    EDITOR = "editor"
    """
    Content author. Creates products and moves drafts into review.
    Who: Content team, product managers
    """

    REVIEWER = "reviewer"
    """
    Quality gate. Approves or rejects products that are in review.
    Who: QA team, compliance
    """

    VIEWER = "viewer"
    """
    Read-only access to published and approved content.
    Who: Stakeholders, auditors
    """


class Level(IntEnum):
    """Authority levels. Lower value means more authority."""

    ADMIN = 1
    CONTRIBUTOR = 2
    READ_ONLY = 3


@dataclass(frozen=True)
class RoleInfo:
    """Metadata about a role."""

    role: Role
    level: Level
    display_name: str
    description: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


ROLES: Dict[Role, RoleInfo] = {
    Role.ADMIN: RoleInfo(
        role=Role.ADMIN,
        level=Level.ADMIN,
        display_name="Administrator",
        description="Full system access including users, settings and audit",
    ),
    Role.EDITOR: RoleInfo(
        role=Role.EDITOR,
        level=Level.CONTRIBUTOR,
        display_name="Editor",
        description="Creates and edits products, submits drafts for review",
    ),
    Role.REVIEWER: RoleInfo(
        role=Role.REVIEWER,
        level=Level.CONTRIBUTOR,
        display_name="Reviewer",
        description="Reviews, approves and rejects products",
    ),
    Role.VIEWER: RoleInfo(
        role=Role.VIEWER,
        level=Level.READ_ONLY,
        display_name="Viewer",
        description="Read-only access to published and approved content",
    ),
}


def get_role_info(role: Role) -> RoleInfo:
    """Get metadata for a role."""
    return ROLES[role]


def parse_role(value: Union[Role, str, None]) -> Optional[Role]:
    """
    Resolve a role from its enum or string value.

    Returns None for anything outside the closed role set so callers can
    deny by default instead of crashing.
    """
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


def roles_below(role: Role) -> FrozenSet[Role]:
    """Roles with strictly less authority than ``role``."""
    level = ROLES[role].level
    return frozenset(r for r, info in ROLES.items() if info.level > level)


# =============================================================================
# ROLE SETS
# =============================================================================

ALL_ROLES: FrozenSet[Role] = frozenset(Role)

CONTENT_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.EDITOR})
"""Roles that can author product content."""

REVIEW_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.REVIEWER})
"""Roles that can approve or reject products."""
