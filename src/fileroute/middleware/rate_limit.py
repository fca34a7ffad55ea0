"""
=============================================================================
RATE LIMITING MIDDLEWARE
=============================================================================

Fixed-window attempt counting per client and path, typically placed in
front of login and registration to slow down credential stuffing.

=============================================================================
ALGORITHM
=============================================================================

Each key (client address + path) keeps the timestamps of its recent
attempts. On every request:

    1. Drop timestamps older than now - window
    2. If what is left already reaches max_attempts → 429
    3. Otherwise record now and continue

    max_attempts=3, window=60s

    t=0   [ ]          → allowed   [0]
    t=1   [0]          → allowed   [0, 1]
    t=2   [0, 1]       → allowed   [0, 1, 2]
    t=3   [0, 1, 2]    → REJECTED (429), nothing recorded
    t=61  [1, 2]       → allowed   [1, 2, 61]

Rejected attempts are not recorded, so a client that keeps hammering
does not extend its own lockout.

=============================================================================
STORES
=============================================================================

Counts live in a RateLimitStore:

    InMemoryRateLimitStore   one process; a lock guards the bucket map
    RedisRateLimitStore      shared by every worker process via Redis

With several worker processes an in-memory store counts per process, so
each worker lets max_attempts through. Use Redis there.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional
import hashlib
import logging
import threading
import time
import uuid

from ..http.request import Request
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.status_codes import HTTPStatus
from .base import Middleware, NextHandler


logger = logging.getLogger(__name__)


Clock = Callable[[], float]


class RateLimitStore(ABC):
    """Backing store for attempt counts."""

    @abstractmethod
    def hit(self, key: str, window: float, limit: int, now: float) -> bool:
        """
        Prune, check and record one attempt atomically.

        Args:
            key: Bucket key
            window: Decay window in seconds
            limit: Maximum attempts within the window
            now: Current time in seconds

        Returns:
            True if the attempt is allowed (and was recorded)
        """
        pass

    @abstractmethod
    def reset(self, key: str) -> None:
        """Forget every attempt for a key."""
        pass


class InMemoryRateLimitStore(RateLimitStore):
    """
    Per-process buckets of attempt timestamps.

    Each bucket remembers when its newest attempt leaves the window; every
    `sweep_every` hits the expired buckets are dropped, so keys from clients
    that went away do not pile up.

    THREAD SAFETY:
    One lock guards the whole map; every operation is short.
    """

    def __init__(self, sweep_every: int = 1000):
        self._buckets: Dict[str, List[float]] = {}
        self._expires: Dict[str, float] = {}
        self._hits = 0
        self.sweep_every = max(1, sweep_every)
        self._lock = threading.Lock()

    def hit(self, key: str, window: float, limit: int, now: float) -> bool:
        with self._lock:
            self._hits += 1
            if self._hits % self.sweep_every == 0:
                self._sweep(now)

            cutoff = now - window
            attempts = [ts for ts in self._buckets.get(key, []) if ts > cutoff]
            if len(attempts) >= limit:
                self._buckets[key] = attempts
                return False
            attempts.append(now)
            self._buckets[key] = attempts
            self._expires[key] = max(self._expires.get(key, 0.0), now + window)
            return True

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)
            self._expires.pop(key, None)

    def count(self, key: str) -> int:
        with self._lock:
            return len(self._buckets.get(key, []))

    def size(self) -> int:
        """Number of live buckets."""
        with self._lock:
            return len(self._buckets)

    def prune(self, now: float) -> int:
        """Drop buckets whose every attempt has left its window; returns how many."""
        with self._lock:
            return self._sweep(now)

    def _sweep(self, now: float) -> int:
        stale = [k for k in self._buckets if self._expires.get(k, 0.0) <= now]
        for key in stale:
            del self._buckets[key]
            self._expires.pop(key, None)
        return len(stale)


class RedisRateLimitStore(RateLimitStore):
    """
    Buckets as Redis sorted sets (member = unique id, score = timestamp).

    One MULTI/EXEC transaction per attempt, so concurrent workers cannot
    both pass the check:

        ZREMRANGEBYSCORE key -inf now-window     prune
        ZADD key {id: now}                        record
        ZCARD key                                 count, including this attempt
        EXPIRE key window

    When the count is over the limit the attempt's own member is removed
    again (ZREM), leaving rejected attempts unrecorded.

    Usage:
        store = RedisRateLimitStore.from_url("redis://localhost:6379/0")
    """

    def __init__(self, client: Any, prefix: str = "fileroute:ratelimit:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisRateLimitStore":
        import redis
        return cls(redis.from_url(url), **kwargs)

    def hit(self, key: str, window: float, limit: int, now: float) -> bool:
        redis_key = self.prefix + key
        member = f"{now}:{uuid.uuid4().hex[:8]}"

        pipe = self.client.pipeline(transaction=True)
        pipe.zremrangebyscore(redis_key, "-inf", now - window)
        pipe.zadd(redis_key, {member: now})
        pipe.zcard(redis_key)
        pipe.expire(redis_key, max(1, int(window) + 1))
        _, _, count, _ = pipe.execute()

        if count > limit:
            self.client.zrem(redis_key, member)
            return False
        return True

    def reset(self, key: str) -> None:
        self.client.delete(self.prefix + key)


def client_path_key(request: Request) -> str:
    """Digest of client address + path; raw addresses never reach the store."""
    ip = request.client_address[0] or "unknown"
    return hashlib.blake2b(f"{ip}{request.path}".encode("utf-8"), digest_size=16).hexdigest()


class RateLimitMiddleware(Middleware):
    """
    Fixed-window rate limiting.

    Args:
        max_attempts: Attempts allowed per window
        decay_seconds: Window length
        store: Where counts live (defaults to a private in-memory store)
        key_func: Request → bucket key (defaults to client address + path)
        clock: Time source, injectable for tests
        methods: Only count these methods (all methods when None)
    """

    def __init__(
        self,
        max_attempts: int = 5,
        decay_seconds: float = 60.0,
        store: Optional[RateLimitStore] = None,
        key_func: Optional[Callable[[Request], str]] = None,
        clock: Clock = time.time,
        methods: Optional[Iterable[str]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if decay_seconds <= 0:
            raise ValueError("decay_seconds must be positive")
        self.max_attempts = max_attempts
        self.decay_seconds = decay_seconds
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.key_func = key_func or client_path_key
        self.clock = clock
        self.methods = frozenset(m.upper() for m in methods) if methods is not None else None

    def __call__(self, request: Request, next: NextHandler) -> HTTPResponse:
        if self.methods is not None and request.method not in self.methods:
            return next(request)

        key = self.key_func(request)

        if not self.store.hit(key, self.decay_seconds, self.max_attempts, self.clock()):
            logger.warning(
                "Rate limit exceeded",
                extra={"context": {"ip": request.client_address[0] or "unknown", "path": request.path}},
            )
            return self._reject(request)

        return next(request)

    def _reject(self, request: Request) -> HTTPResponse:
        builder = (ResponseBuilder()
            .status(HTTPStatus.TOO_MANY_REQUESTS)
            .header("Retry-After", str(int(self.decay_seconds))))
        if request.wants_json:
            builder.json({"error": "Too many requests"})
        else:
            builder.text("Too many requests. Please try again later.")
        return builder.build()

    def reset(self, request: Request) -> None:
        """Clear the bucket for a request's key (e.g. after a good login)."""
        self.store.reset(self.key_func(request))


def limit(
    max_attempts: int = 5,
    decay_seconds: float = 60.0,
    store: Optional[RateLimitStore] = None,
    clock: Clock = time.time,
    methods: Optional[Iterable[str]] = None,
) -> RateLimitMiddleware:
    """
    Build a rate-limit step.

        app.use(limit(5, 60, methods=["POST"]), paths=["login", "register"])
    """
    return RateLimitMiddleware(max_attempts, decay_seconds, store=store, clock=clock, methods=methods)
