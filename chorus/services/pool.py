"""
ClientPool - Reuses authenticated backend clients keyed by access token.

Features:
- One cached client per credential, keyed by a digest of the token
- Never caches a client built from a token that is about to expire
- TTL eviction (idle and absolute age) on a fixed cleanup interval
- LRU eviction when the pool is over its size bound

The pool is a performance optimization only. Misses, expiring tokens and
undecodable tokens all fall back to building a fresh, unpooled client.
"""

import hashlib
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from loguru import logger

from chorus.services.tokens import token_expires_within

if TYPE_CHECKING:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

    from chorus.settings import Settings

C = TypeVar("C")

CLEANUP_JOB_ID = "client_pool_cleanup"


@dataclass
class PoolConfig:
    """Configuration for the client pool."""

    max_size: int = 50
    client_ttl: timedelta = timedelta(minutes=30)  # Idle time before eviction
    cleanup_interval: timedelta = timedelta(minutes=5)
    expiry_margin: timedelta = timedelta(minutes=5)  # Tokens this close to exp are not pooled

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PoolConfig":
        return cls(
            max_size=settings.pool_max_size,
            client_ttl=timedelta(minutes=settings.pool_client_ttl_minutes),
            cleanup_interval=timedelta(minutes=settings.pool_cleanup_interval_minutes),
            expiry_margin=timedelta(seconds=settings.pool_expiry_margin_seconds),
        )


@dataclass
class PooledClient(Generic[C]):
    """A cached client and its usage timestamps (monotonic seconds)."""

    credential_hash: str
    token: str
    client: C
    created_at: float
    last_used: float

    def touch(self, now: float) -> None:
        self.last_used = max(self.last_used, now)


class ClientPool(Generic[C]):
    """
    Token-keyed cache of authenticated clients.

    Usage:
        pool = ClientPool(client_factory=BackendClientFactory(settings))
        client = pool.get_client(access_token)

        # Periodic eviction on an AsyncIOScheduler
        pool.start_cleanup(scheduler)
    """

    def __init__(
        self,
        client_factory: Callable[[str], C],
        config: PoolConfig | None = None,
        debug: bool = False,
    ):
        self._client_factory = client_factory
        self.config = config or PoolConfig()
        self._pool: dict[str, PooledClient[C]] = {}
        self._debug = debug
        self._stats = PoolStats()
        self._scheduler: "AsyncIOScheduler | None" = None

    @property
    def max_size(self) -> int:
        return self.config.max_size

    @property
    def size(self) -> int:
        return len(self._pool)

    def __len__(self) -> int:
        return len(self._pool)

    @staticmethod
    def hash_token(token: str) -> str:
        """Digest of the whole token, used only as a map key."""
        return hashlib.md5(token.encode("utf-8")).hexdigest()

    def get_client(self, token: str) -> C:
        """
        Get a client authenticated with `token`.

        Returns the cached client on a hit. Tokens that are expired or expire
        within the safety margin always get a fresh client that is never
        cached. New clients are cached only while the pool is below max_size.
        """
        if token_expires_within(token, self.config.expiry_margin):
            self._stats.unpooled += 1
            self._log("UNPOOLED: token expired or expiring soon")
            return self._client_factory(token)

        key = self.hash_token(token)
        entry = self._pool.get(key)
        now = time.monotonic()

        if entry is not None and entry.token == token:
            entry.touch(now)
            self._stats.hits += 1
            self._log(f"HIT: {key[:12]}")
            return entry.client

        self._stats.misses += 1
        client = self._client_factory(token)

        if entry is None and len(self._pool) < self.config.max_size:
            self._pool[key] = PooledClient(
                credential_hash=key,
                token=token,
                client=client,
                created_at=now,
                last_used=now,
            )
            self._log(f"SET: {key[:12]} (size: {len(self._pool)})")
        else:
            self._log(f"MISS: {key[:12]} not pooled (size: {len(self._pool)})")

        return client

    def cleanup(self) -> int:
        """
        Evict stale entries, then trim to max_size by least recent use.

        An entry is stale when it has been idle longer than client_ttl or was
        created more than twice client_ttl ago.

        Returns:
            Number of entries evicted
        """
        now = time.monotonic()
        ttl = self.config.client_ttl.total_seconds()

        expired_keys = [
            key
            for key, entry in self._pool.items()
            if now - entry.last_used > ttl or now - entry.created_at > ttl * 2
        ]
        for key in expired_keys:
            del self._pool[key]

        overflow = len(self._pool) - self.config.max_size
        lru_keys: list[str] = []
        if overflow > 0:
            by_last_used = sorted(self._pool.items(), key=lambda kv: kv[1].last_used)
            lru_keys = [key for key, _ in by_last_used[:overflow]]
            for key in lru_keys:
                del self._pool[key]
            logger.warning(
                f"Client pool over capacity, evicted {len(lru_keys)} least recently used"
            )

        evicted = len(expired_keys) + len(lru_keys)
        self._stats.evictions += evicted
        if evicted:
            self._log(
                f"CLEANUP: {len(expired_keys)} expired, {len(lru_keys)} LRU "
                f"(size: {len(self._pool)})"
            )
        return evicted

    async def _cleanup_job(self) -> None:
        self.cleanup()

    def start_cleanup(self, scheduler: "AsyncIOScheduler") -> None:
        """Run cleanup every cleanup_interval on the given scheduler."""
        scheduler.add_job(
            self._cleanup_job,
            trigger="interval",
            seconds=self.config.cleanup_interval.total_seconds(),
            id=CLEANUP_JOB_ID,
            name="Client Pool Cleanup",
            replace_existing=True,
        )
        self._scheduler = scheduler
        logger.info(
            f"Client pool cleanup scheduled every "
            f"{self.config.cleanup_interval.total_seconds():.0f}s"
        )

    def stop_cleanup(self) -> None:
        """Remove the cleanup job, if scheduled."""
        if self._scheduler is None:
            return
        if self._scheduler.get_job(CLEANUP_JOB_ID) is not None:
            self._scheduler.remove_job(CLEANUP_JOB_ID)
        self._scheduler = None

    def clear(self) -> None:
        """Drop every pooled client."""
        count = len(self._pool)
        self._pool.clear()
        self._log(f"CLEAR: {count} entries removed")

    def entries(self) -> list[PooledClient[C]]:
        """Snapshot of the pooled entries."""
        return list(self._pool.values())

    def get_stats(self) -> "PoolStats":
        """Get pool statistics."""
        self._stats.size = len(self._pool)
        self._stats.max_size = self.config.max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[ClientPool] {message}")


@dataclass
class PoolStats:
    """Client pool statistics."""

    hits: int = 0
    misses: int = 0
    unpooled: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate pool hit rate."""
        total = self.hits + self.misses + self.unpooled
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "unpooled": self.unpooled,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
