"""
Permission Grammar

Permissions are parsed once into one of four shapes and compared
structurally afterwards:

    Exact("products", "create")   <- "products:create"
    ResourceWildcard("products")  <- "products:*"
    GlobalWildcard()              <- "*"
    BareAction("publish")         <- "publish"

All parsing is case-insensitive; parsed values are lowercase.

Matching rules (held grants requested when any applies):
- held == requested
- held is the global wildcard
- held is a resource wildcard and requested names the same resource
- held is a bare action equal to requested's action
- requested is a bare action equal to held's action

The last rule makes bare actions symmetric: a request for "publish" is
satisfied by a held "workflow:publish", and a held "publish" satisfies
a request for "workflow:publish".
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional, Union


WILDCARD = "*"
SEPARATOR = ":"


class InvalidPermissionError(ValueError):
    """Raised when a permission string does not fit the grammar."""
    pass


@dataclass(frozen=True)
class Exact:
    """A single action on a single resource type."""
    resource: str
    action: str

    def __str__(self) -> str:
        return f"{self.resource}{SEPARATOR}{self.action}"


@dataclass(frozen=True)
class ResourceWildcard:
    """Every action on one resource type."""
    resource: str

    def __str__(self) -> str:
        return f"{self.resource}{SEPARATOR}{WILDCARD}"


@dataclass(frozen=True)
class GlobalWildcard:
    """Every action on every resource."""

    def __str__(self) -> str:
        return WILDCARD


@dataclass(frozen=True)
class BareAction:
    """An action on any resource."""
    action: str

    def __str__(self) -> str:
        return self.action


PermissionPattern = Union[Exact, ResourceWildcard, GlobalWildcard, BareAction]


def _check_token(token: str, original: str) -> str:
    if not token:
        raise InvalidPermissionError(f"Invalid permission '{original}': empty segment")
    if WILDCARD in token or SEPARATOR in token or any(c.isspace() for c in token):
        raise InvalidPermissionError(f"Invalid permission '{original}': bad segment '{token}'")
    return token


@lru_cache(maxsize=4096)
def parse_permission(text: str) -> PermissionPattern:
    """
    Parse a permission string into its structural form.

    Raises:
        InvalidPermissionError: If the text is empty or malformed.
    """
    if not isinstance(text, str):
        raise InvalidPermissionError(f"Permission must be a string, got {type(text).__name__}")

    value = text.strip().lower()
    if not value:
        raise InvalidPermissionError("Permission must not be empty")

    if value == WILDCARD:
        return GlobalWildcard()

    if SEPARATOR not in value:
        return BareAction(_check_token(value, text))

    resource, _, action = value.partition(SEPARATOR)
    resource = _check_token(resource, text)
    if action == WILDCARD:
        return ResourceWildcard(resource)
    return Exact(resource, _check_token(action, text))


def as_permission(value: Union[str, PermissionPattern]) -> PermissionPattern:
    """Accept either a raw string or an already-parsed permission."""
    if isinstance(value, (Exact, ResourceWildcard, GlobalWildcard, BareAction)):
        return value
    return parse_permission(value)


def requested_permission(action: str, resource: Optional[str] = None) -> PermissionPattern:
    """
    Build the permission being asked for by a check.

    A qualified action ("products:create") is parsed as-is and ``resource``
    is treated as context only. A bare action paired with a resource type
    becomes an exact permission; a bare action on its own stays bare.
    """
    if not isinstance(action, str) or not action.strip():
        raise InvalidPermissionError("Action must be a non-empty string")

    if SEPARATOR in action or action.strip() == WILDCARD:
        return parse_permission(action)
    if resource:
        return parse_permission(f"{resource}{SEPARATOR}{action}")
    return parse_permission(action)


def _action_of(pattern: PermissionPattern) -> Optional[str]:
    if isinstance(pattern, (Exact, BareAction)):
        return pattern.action
    return None


def matches(held: PermissionPattern, requested: PermissionPattern) -> bool:
    """Check whether a held permission satisfies a requested one."""
    if held == requested:
        return True

    if isinstance(held, GlobalWildcard):
        return True

    if isinstance(held, ResourceWildcard):
        return isinstance(requested, (Exact, ResourceWildcard)) and requested.resource == held.resource

    if isinstance(held, BareAction):
        return _action_of(requested) == held.action

    if isinstance(requested, BareAction):
        return _action_of(held) == requested.action

    return False


def any_matches(held: Iterable[PermissionPattern], requested: PermissionPattern) -> bool:
    """Check whether any held permission satisfies the request."""
    return any(matches(permission, requested) for permission in held)


def first_match(
    held: Iterable[PermissionPattern], requested: PermissionPattern
) -> Optional[PermissionPattern]:
    """Return the first held permission that satisfies the request."""
    for permission in held:
        if matches(permission, requested):
            return permission
    return None
