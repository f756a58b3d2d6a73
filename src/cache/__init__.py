"""Cache layer for authorization decisions.

Provides the in-process two-tier cache used by the authorization engine.
"""

from .permission_cache import (
    CacheEntry,
    CachePriority,
    CacheStatistics,
    PermissionCache,
    WarmEntry,
)

__all__ = [
    "CacheEntry",
    "CachePriority",
    "CacheStatistics",
    "PermissionCache",
    "WarmEntry",
]
