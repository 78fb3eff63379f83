"""Per-client token bucket rate limiting."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from farm_manager.models.security import RateLimiterStats

UNKNOWN_IDENTITY = "unknown"


@dataclass
class TokenBucket:
    """
    Token bucket for a single client identity:
    - burst = max tokens in bucket
    - rps = tokens refilled per second
    Each admitted request consumes 1 token.
    """

    rps: float
    burst: float
    tokens: float
    last_refill: float
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )
    evicted: bool = field(default=False, init=False, repr=False, compare=False)

    def _refill(self, now: float) -> None:
        elapsed = now - self.last_refill
        if elapsed > 0:
            self.tokens = min(self.burst, self.tokens + elapsed * self.rps)
            self.last_refill = now

    def allow(self, now: float) -> Optional[bool]:
        """Refill for the time elapsed since the last call, then try to take one token.

        Returns None once the bucket has been evicted from its registry; the
        caller must look the identity up again.
        """
        with self._lock:
            if self.evicted:
                return None
            self._refill(now)
            if self.tokens >= 1.0:
                self.tokens -= 1.0
                return True
            return False

    def available(self, now: float) -> float:
        """Tokens the bucket would hold at ``now``, without mutating it."""
        with self._lock:
            elapsed = max(0.0, now - self.last_refill)
            return min(self.burst, self.tokens + elapsed * self.rps)

    def evict_if_idle(self, now: float, idle_ttl: float) -> bool:
        """Mark the bucket evicted if it is idle and full."""
        with self._lock:
            elapsed = now - self.last_refill
            full = self.tokens + max(0.0, elapsed) * self.rps >= self.burst
            if elapsed >= idle_ttl and full:
                self.evicted = True
            return self.evicted


class RateLimiter:
    """Registry of token buckets keyed by client identity.

    One instance per application. Buckets are created lazily on first use.
    """

    def __init__(
        self,
        requests_per_second: float = 10,
        burst: float = 20,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rps = float(requests_per_second)
        self.burst = float(burst)
        self.clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, TokenBucket] = {}

    def _bucket(self, identity: str, now: float) -> TokenBucket:
        with self._lock:
            bucket = self._buckets.get(identity)
            if bucket is None:
                bucket = TokenBucket(
                    rps=self.rps, burst=self.burst, tokens=self.burst, last_refill=now
                )
                self._buckets[identity] = bucket
            return bucket

    def allow(self, identity: Optional[str], now: Optional[float] = None) -> bool:
        """Return True if a request from ``identity`` is admitted at ``now``."""
        if now is None:
            now = self.clock()
        identity = identity or UNKNOWN_IDENTITY
        while True:
            admitted = self._bucket(identity, now).allow(now)
            if admitted is not None:
                return admitted

    def retry_after(self, identity: Optional[str], now: Optional[float] = None) -> int:
        """Whole seconds until ``identity`` has a token again (at least 1)."""
        if now is None:
            now = self.clock()
        with self._lock:
            bucket = self._buckets.get(identity or UNKNOWN_IDENTITY)
        if bucket is None:
            return 1
        missing = 1.0 - bucket.available(now)
        if missing <= 0:
            return 1
        return max(1, math.ceil(missing / self.rps))

    def sweep(self, idle_ttl: float, now: Optional[float] = None) -> int:
        """Drop buckets idle for ``idle_ttl`` seconds that have fully refilled.

        A dropped bucket would be recreated full, so eviction never changes
        an admission decision. Returns the number of buckets removed.
        """
        if now is None:
            now = self.clock()
        with self._lock:
            stale = [
                identity
                for identity, bucket in self._buckets.items()
                if bucket.evict_if_idle(now, idle_ttl)
            ]
            for identity in stale:
                del self._buckets[identity]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def __contains__(self, identity: str) -> bool:
        with self._lock:
            return identity in self._buckets

    def get_stats(self) -> RateLimiterStats:
        return RateLimiterStats(
            tracked_identities=len(self),
            requests_per_second=self.rps,
            burst=self.burst,
        )
