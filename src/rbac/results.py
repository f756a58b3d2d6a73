"""
Decision and operation results.

PermissionResult is what every authorization check returns. Outcome
wraps grant/revoke operations so validation problems come back as data
instead of exceptions.
"""

from enum import Enum
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class DecisionSource(str, Enum):
    """Which rule produced a decision."""
    ROLE = "role"
    HIERARCHY = "hierarchy"
    OWNERSHIP = "ownership"
    ASSIGNMENT = "assignment"
    DYNAMIC = "dynamic"
    ADMIN_OVERRIDE = "admin_override"
    DENIED = "denied"


@dataclass(frozen=True)
class PermissionResult:
    """Outcome of a single authorization check."""

    granted: bool
    reason: str
    source: DecisionSource
    cached: bool = False
    elapsed_ms: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls, reason: str, source: DecisionSource, **metadata: Any) -> "PermissionResult":
        return cls(granted=True, reason=reason, source=source, metadata=metadata)

    @classmethod
    def deny(cls, reason: str, **metadata: Any) -> "PermissionResult":
        return cls(granted=False, reason=reason, source=DecisionSource.DENIED, metadata=metadata)

    def served(self, cached: bool, elapsed_ms: float) -> "PermissionResult":
        """Copy stamped with delivery details."""
        return replace(self, cached=cached, elapsed_ms=elapsed_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "granted": self.granted,
            "reason": self.reason,
            "source": self.source.value,
            "cached": self.cached,
            "elapsed_ms": round(self.elapsed_ms, 3),
            "metadata": dict(self.metadata),
        }


@dataclass
class Outcome(Generic[T]):
    """Result of a grant or revoke operation."""

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    validation_errors: List[str] = field(default_factory=list)

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, validation_errors: Optional[List[str]] = None) -> "Outcome[T]":
        return cls(success=False, error=error, validation_errors=validation_errors or [])

    def __bool__(self) -> bool:
        return self.success
