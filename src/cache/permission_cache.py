"""Two-tier cache for authorization decisions.

Tier 1 is a small hot set that absorbs most lookups. Tier 2 is larger
and holds high-priority or frequently accessed decisions, plus entries
demoted out of tier 1 under pressure. A tier-2 entry is promoted back to
tier 1 after repeated hits within its TTL.

Eviction from tier 1 prefers low, then normal, then high priority
entries; critical entries go only when nothing else is left. Entries
carry tags so every decision about a user, role or resource can be
dropped at once.

Usage:
    cache = PermissionCache()
    cache.set(key, result, priority=CachePriority.HIGH, tags=["user:u-1"])
    cache.get(key)
    cache.invalidate_by_tag("user:u-1")
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter, OrderedDict, deque
from dataclasses import dataclass, field
from enum import IntEnum
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
)

from config.settings import CacheSettings

logger = logging.getLogger(__name__)


class CachePriority(IntEnum):
    """Cache priority levels. Higher survives eviction longer."""

    LOW = 1
    NORMAL = 2
    HIGH = 3
    CRITICAL = 4


@dataclass
class CacheEntry:
    """A cached decision with its bookkeeping."""

    key: str
    value: Any
    priority: CachePriority
    tags: FrozenSet[str]
    inserted_at: float
    expires_at: float
    last_accessed: float
    access_count: int = 0
    tier2_hits: int = 0

    def is_valid(self, now: float) -> bool:
        return self.expires_at > now


@dataclass
class WarmEntry:
    """A decision to seed during warm-up."""

    key: str
    value: Any
    priority: CachePriority = CachePriority.NORMAL
    tags: Iterable[str] = ()


@dataclass
class CacheStatistics:
    """Snapshot of cache counters."""

    total_entries: int = 0
    l1_size: int = 0
    l2_size: int = 0
    hits: int = 0
    misses: int = 0
    l1_hits: int = 0
    l2_hits: int = 0
    evictions: int = 0
    promotions: int = 0
    demotions: int = 0
    expired_removed: int = 0
    warming_operations: int = 0
    invalidation_operations: int = 0
    priority_distribution: Dict[str, int] = field(default_factory=dict)
    tag_distribution: Dict[str, int] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    @property
    def miss_rate(self) -> float:
        total = self.hits + self.misses
        return self.misses / total if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "l1_size": self.l1_size,
            "l2_size": self.l2_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hit_rate, 4),
            "miss_rate": round(self.miss_rate, 4),
            "l1_hits": self.l1_hits,
            "l2_hits": self.l2_hits,
            "evictions": self.evictions,
            "promotions": self.promotions,
            "demotions": self.demotions,
            "expired_removed": self.expired_removed,
            "warming_operations": self.warming_operations,
            "invalidation_operations": self.invalidation_operations,
            "priority_distribution": dict(self.priority_distribution),
            "tag_distribution": dict(self.tag_distribution),
        }


class PermissionCache:
    """Two-tier TTL cache with priority eviction and tag invalidation.

    Both tiers are guarded by one lock; every public method is atomic with
    respect to the others.
    """

    def __init__(
        self,
        settings: Optional[CacheSettings] = None,
        clock: Optional[Callable[[], float]] = None,
        warming_enabled: Optional[bool] = None,
    ):
        """Initialize the cache.

        Args:
            settings: Cache settings (defaults loaded from environment).
            clock: Monotonic clock in seconds, injectable for tests.
            warming_enabled: Override for the warm-up switch.
        """
        self.settings = settings or CacheSettings()
        self._clock = clock or time.monotonic
        self.warming_enabled = (
            self.settings.warming_enabled if warming_enabled is None else warming_enabled
        )

        self._l1: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._l2: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._access_log: Dict[str, Deque[float]] = {}
        self._stats = CacheStatistics()
        self._lock = threading.RLock()

    # =========================================================================
    # READ / WRITE
    # =========================================================================

    def get(self, key: str) -> Optional[Any]:
        """Get a cached value.

        Args:
            key: Cache key.

        Returns:
            Cached value or None on miss or expiry.
        """
        with self._lock:
            now = self._clock()

            entry = self._l1.get(key)
            if entry is not None:
                if entry.is_valid(now):
                    self._touch(entry, now)
                    self._l1.move_to_end(key)
                    self._stats.hits += 1
                    self._stats.l1_hits += 1
                    logger.debug(f"Cache HIT (l1): {key}")
                    return entry.value
                del self._l1[key]
                self._stats.expired_removed += 1

            entry = self._l2.get(key)
            if entry is not None:
                if entry.is_valid(now):
                    self._touch(entry, now)
                    entry.tier2_hits += 1
                    self._l2.move_to_end(key)
                    self._stats.hits += 1
                    self._stats.l2_hits += 1
                    if entry.tier2_hits >= self.settings.promotion_hits:
                        self._store_l1(entry)
                        self._stats.promotions += 1
                        logger.debug(f"Cache promote to l1: {key}")
                    logger.debug(f"Cache HIT (l2): {key}")
                    return entry.value
                del self._l2[key]
                self._stats.expired_removed += 1

            self._stats.misses += 1
            logger.debug(f"Cache MISS: {key}")
            return None

    def set(
        self,
        key: str,
        value: Any,
        priority: CachePriority = CachePriority.NORMAL,
        tags: Iterable[str] = (),
        ttl: Optional[float] = None,
    ) -> None:
        """Store a value.

        Args:
            key: Cache key.
            value: Value to cache.
            priority: Eviction priority; also selects the default TTL.
            tags: Labels for bulk invalidation.
            ttl: Explicit TTL in seconds (overrides the priority TTL).
        """
        with self._lock:
            now = self._clock()
            entry = CacheEntry(
                key=key,
                value=value,
                priority=priority,
                tags=frozenset(tags),
                inserted_at=now,
                expires_at=now + (ttl if ttl is not None else self.ttl_for(priority)),
                last_accessed=now,
            )

            self._store_l1(entry)

            if priority >= CachePriority.HIGH or self._is_frequent(key, now):
                self._store_l2(entry)
            elif key in self._l2:
                # Never leave an older decision behind in the other tier
                del self._l2[key]

    def delete(self, key: str) -> bool:
        """Delete a key from both tiers."""
        with self._lock:
            removed = self._l1.pop(key, None) is not None
            removed = (self._l2.pop(key, None) is not None) or removed
            self._access_log.pop(key, None)
            return removed

    def ttl_for(self, priority: CachePriority) -> float:
        """Default TTL in seconds for a priority."""
        if priority == CachePriority.CRITICAL:
            return self.settings.critical_ttl_seconds
        if priority == CachePriority.HIGH:
            return self.settings.high_ttl_seconds
        if priority == CachePriority.LOW:
            return self.settings.low_ttl_seconds
        return self.settings.default_ttl_seconds

    # =========================================================================
    # INVALIDATION
    # =========================================================================

    def invalidate_by_tag(self, tag: str) -> int:
        """Remove every entry carrying ``tag``.

        Returns:
            Number of keys removed.
        """
        return self.invalidate_by_tags([tag])

    def invalidate_by_tags(self, tags: Iterable[str]) -> int:
        """Remove every entry carrying ALL of ``tags``."""
        wanted = frozenset(tags)
        with self._lock:
            self._stats.invalidation_operations += 1
            removed = set()
            for tier in (self._l1, self._l2):
                for key in [k for k, e in tier.items() if wanted <= e.tags]:
                    del tier[key]
                    removed.add(key)
            for key in removed:
                self._access_log.pop(key, None)

        if removed:
            logger.debug(f"Invalidated {len(removed)} cache entries for tags={sorted(wanted)}")
        return len(removed)

    def invalidate_by_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``."""
        with self._lock:
            self._stats.invalidation_operations += 1
            removed = set()
            for tier in (self._l1, self._l2):
                for key in [k for k in tier if k.startswith(prefix)]:
                    del tier[key]
                    removed.add(key)
            return len(removed)

    def clear(self) -> None:
        """Drop all entries and reset counters."""
        with self._lock:
            self._l1.clear()
            self._l2.clear()
            self._access_log.clear()
            self._stats = CacheStatistics()

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def compact(self) -> int:
        """Remove expired entries and stale access history.

        Returns:
            Number of expired entries removed.
        """
        with self._lock:
            now = self._clock()
            removed = 0
            for tier in (self._l1, self._l2):
                for key in [k for k, e in tier.items() if not e.is_valid(now)]:
                    del tier[key]
                    removed += 1

            window = self.settings.frequent_access_window_seconds
            for key in list(self._access_log):
                history = self._access_log[key]
                while history and now - history[0] >= window:
                    history.popleft()
                if not history:
                    del self._access_log[key]

            self._stats.expired_removed += removed

        if removed:
            logger.debug(f"Compacted {removed} expired cache entries")
        return removed

    def warm(self, entries: Iterable[WarmEntry]) -> int:
        """Seed the cache with precomputed decisions.

        Args:
            entries: Decisions to store. At most ``max_warming_operations``
                are used.

        Returns:
            Number of entries stored (0 when warming is disabled).
        """
        if not self.warming_enabled:
            logger.debug("Cache warming skipped (disabled)")
            return 0

        started = time.perf_counter()
        stored = 0
        for entry in entries:
            if stored >= self.settings.max_warming_operations:
                break
            self.set(entry.key, entry.value, priority=entry.priority, tags=entry.tags)
            stored += 1

        with self._lock:
            self._stats.warming_operations += 1

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"Cache warming completed in {elapsed_ms:.1f}ms for {stored} entries")
        return stored

    def get_statistics(self) -> CacheStatistics:
        """Snapshot of counters and current distributions."""
        with self._lock:
            entries = self._unique_entries()
            priority_counts = Counter(e.priority.name.lower() for e in entries)
            tag_counts = Counter(tag for e in entries for tag in e.tags)

            snapshot = CacheStatistics(**{
                name: getattr(self._stats, name)
                for name in (
                    "hits", "misses", "l1_hits", "l2_hits", "evictions", "promotions",
                    "demotions", "expired_removed", "warming_operations",
                    "invalidation_operations",
                )
            })
            snapshot.total_entries = len(entries)
            snapshot.l1_size = len(self._l1)
            snapshot.l2_size = len(self._l2)
            snapshot.priority_distribution = {
                p.name.lower(): priority_counts.get(p.name.lower(), 0) for p in CachePriority
            }
            snapshot.tag_distribution = dict(tag_counts)
            return snapshot

    def tier_of(self, key: str) -> List[int]:
        """Tiers currently holding ``key`` (1, 2 or both)."""
        with self._lock:
            return [tier for tier, store in ((1, self._l1), (2, self._l2)) if key in store]

    def count_prefix(self, prefix: str) -> int:
        """Number of distinct keys starting with ``prefix``."""
        with self._lock:
            return len({k for tier in (self._l1, self._l2) for k in tier if k.startswith(prefix)})

    def __len__(self) -> int:
        with self._lock:
            return len(self._unique_entries())

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._l1 or key in self._l2

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _unique_entries(self) -> List[CacheEntry]:
        entries = dict(self._l2)
        entries.update(self._l1)
        return list(entries.values())

    def _touch(self, entry: CacheEntry, now: float) -> None:
        entry.access_count += 1
        entry.last_accessed = now
        history = self._access_log.setdefault(entry.key, deque())
        history.append(now)
        # Only the last few accesses matter for frequency detection
        while len(history) > max(self.settings.frequent_access_threshold, 1) * 4:
            history.popleft()

    def _is_frequent(self, key: str, now: float) -> bool:
        history = self._access_log.get(key)
        if not history:
            return False
        window = self.settings.frequent_access_window_seconds
        recent = sum(1 for t in history if now - t < window)
        return recent >= self.settings.frequent_access_threshold

    def _store_l1(self, entry: CacheEntry) -> None:
        if entry.key in self._l1:
            del self._l1[entry.key]
        elif len(self._l1) >= self.settings.l1_max_size:
            self._evict_from_l1()
        self._l1[entry.key] = entry

    def _store_l2(self, entry: CacheEntry) -> None:
        if entry.key in self._l2:
            del self._l2[entry.key]
        elif len(self._l2) >= self.settings.l2_max_size:
            self._evict_from_l2()
        self._l2[entry.key] = entry

    def _evict_from_l1(self) -> None:
        victim_key = None
        for priority in (CachePriority.LOW, CachePriority.NORMAL, CachePriority.HIGH):
            victim_key = next(
                (k for k, e in self._l1.items() if e.priority == priority), None
            )
            if victim_key is not None:
                break
        if victim_key is None and self._l1:
            victim_key = min(self._l1, key=lambda k: self._l1[k].last_accessed)
        if victim_key is None:
            return

        victim = self._l1.pop(victim_key)
        self._stats.evictions += 1

        if victim.is_valid(self._clock()) and victim_key not in self._l2:
            victim.tier2_hits = 0
            self._store_l2(victim)
            self._stats.demotions += 1

    def _evict_from_l2(self) -> None:
        if not self._l2:
            return
        # OrderedDict keeps least recently used first
        victim_key = next(iter(self._l2))
        del self._l2[victim_key]
        self._stats.evictions += 1
