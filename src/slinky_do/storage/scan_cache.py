"""Time-to-live cache in front of the vault scanner.

States: EMPTY (nothing cached), FRESH (age < ttl) and STALE (age >= ttl).
A query in EMPTY or STALE walks the tree and becomes FRESH; a query in FRESH
is served from memory. ``invalidate`` returns to EMPTY from any state.
Passing time alone moves FRESH to STALE.

The cache does no locking; it is meant for a single-threaded caller.
"""
import logging
import time
from enum import Enum
from typing import Callable, Optional

from slinky_do.models.schema import VaultStats
from slinky_do.storage.vault_scanner import VaultScanner

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CacheState(str, Enum):
    """Lifecycle of the cached scan result."""

    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"


class ScanCache:
    """Caches the most recent ``VaultStats`` for ``ttl`` seconds.

    Args:
        scanner: Scanner run on a miss
        ttl: Seconds a result stays fresh; 0 means every query rescans
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        scanner: VaultScanner,
        ttl: float = 60.0,
        clock: Clock = time.monotonic,
    ) -> None:
        if ttl < 0:
            raise ValueError("ttl must be >= 0")
        self.scanner = scanner
        self.ttl = ttl
        self._clock = clock
        self._stats: Optional[VaultStats] = None
        self._captured_at: Optional[float] = None
        self.hits = 0
        self.misses = 0

    @property
    def state(self) -> CacheState:
        if self._stats is None or self._captured_at is None:
            return CacheState.EMPTY
        if self._clock() - self._captured_at < self.ttl:
            return CacheState.FRESH
        return CacheState.STALE

    @property
    def age(self) -> Optional[float]:
        """Seconds since the cached scan, or None when empty."""
        if self._captured_at is None:
            return None
        return self._clock() - self._captured_at

    def get(self, bypass: bool = False) -> VaultStats:
        """Return cached stats if fresh, otherwise scan and cache.

        Args:
            bypass: Scan even when the cached value is fresh
        """
        if not bypass and self.state is CacheState.FRESH:
            self.hits += 1
            logger.debug("Vault stats served from cache (age %.1fs)", self.age)
            return self._stats  # type: ignore[return-value]

        self.misses += 1
        previous = self.state
        stats = self.scanner.scan()
        self._stats = stats
        self._captured_at = self._clock()
        logger.debug(
            "Vault stats refreshed (was %s, bypass=%s)", previous.value, bypass
        )
        return stats

    def peek(self) -> Optional[VaultStats]:
        """The cached value regardless of age, without scanning."""
        return self._stats

    def invalidate(self) -> None:
        """Drop the cached value so the next query rescans."""
        if self._stats is not None:
            logger.debug("Vault stats cache invalidated")
        self._stats = None
        self._captured_at = None
