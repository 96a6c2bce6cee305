"""
Summary cache -- injected key/value store for precomputed summaries.

Responsibility:
    Holds derived, never-authoritative payloads (stock summary, dashboard
    KPIs, account balances, master lists) with a time-to-live.  Mutating
    services invalidate keys explicitly after they flush.

Architecture position:
    Kernel > Services.  The cache is a capability passed into services; there
    is no module-level singleton, so every test and every process decides
    which cache it uses.

Invariants enforced:
    - Expiry is passive: an entry past its TTL is treated as absent on read.
    - Time comes from the injected Clock.
    - Entries are derived data.  Losing the whole cache is always safe.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.logging_config import get_logger

logger = get_logger("services.summary_cache")


class CacheKeys:
    """Logical cache key names."""

    STOCK_SUMMARY = "precomputed:stock-summary"
    DASHBOARD_KPIS = "precomputed:dashboard-kpis"
    ACCOUNT_BALANCES = "precomputed:account-balances"
    CUSTOMERS = "masters:customers"
    SUPPLIERS = "masters:suppliers"
    ACCOUNTS = "masters:accounts"

    PRECOMPUTED_PREFIX = "precomputed:"
    MASTERS_PREFIX = "masters:"

    @classmethod
    def masters_for(cls, party_type: str) -> str:
        return cls.CUSTOMERS if party_type == "customer" else cls.SUPPLIERS


@dataclass(frozen=True)
class CacheTtl:
    """Time-to-live classes, in seconds."""

    master: int = 30 * 60
    computed: int = 5 * 60
    volatile: int = 60


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


class SummaryCache(ABC):
    """Cache capability used by the kernel services."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss or expiry."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove one key.  Returns True if it was present."""

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix.  Returns the count removed."""

    @abstractmethod
    def clear(self) -> None:
        ...


@dataclass
class _Entry:
    value: Any
    expires_at: datetime


class InMemorySummaryCache(SummaryCache):
    """
    Process-local cache with TTL expiry.

    Safe for use from several threads; a single lock guards the dict.
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def get(self, key: str) -> Any | None:
        now = self._clock.now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                return None
            if now >= entry.expires_at:
                del self._entries[key]
                self.stats.misses += 1
                return None
            self.stats.hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        expires_at = self._clock.now() + timedelta(seconds=ttl_seconds)
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=expires_at)

    def delete(self, key: str) -> bool:
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self.stats.invalidations += 1
        return removed

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            self.stats.invalidations += len(keys)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class NullSummaryCache(SummaryCache):
    """A cache that never stores anything.  Every read recomputes."""

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        return None

    def delete(self, key: str) -> bool:
        return False

    def delete_prefix(self, prefix: str) -> int:
        return 0

    def clear(self) -> None:
        return None
