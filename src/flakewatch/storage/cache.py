"""Per-identity outcome history cache.

Uses diskcache for SQLite-based persistent caching. Entries are keyed
by identity and dropped explicitly whenever that identity is written.
"""

from typing import Optional

from diskcache import Cache

from ..logging_config import get_logger
from ..models import OutcomeRecord, TestIdentity

logger = get_logger(__name__)


class IdentityCache:
    """Outcome histories keyed by ``TestIdentity.key``.

    Features:
    - TTL-based expiration
    - Explicit invalidation per identity
    - Thread-safe operations
    """

    def __init__(self, cache_dir: str = ".flakewatch/cache", ttl_seconds: int = 3600, enabled: bool = True):
        self.enabled = enabled
        self.ttl_seconds = ttl_seconds

        if self.enabled:
            self.cache = Cache(cache_dir)
            logger.debug(f"Identity cache initialized at {cache_dir} with TTL={ttl_seconds}s")
        else:
            self.cache = None
            logger.debug("Identity cache disabled")

    @staticmethod
    def _key(identity: TestIdentity) -> str:
        return f"outcomes:{identity.key}"

    def get(self, identity: TestIdentity) -> Optional[list[OutcomeRecord]]:
        """Cached history, or None if not found/expired."""
        if not self.enabled or self.cache is None:
            return None

        try:
            value = self.cache.get(self._key(identity))
            if value is not None:
                logger.debug(f"Cache hit: {identity.key}")
            return value
        except Exception as e:
            logger.warning(f"Cache get failed: {e}")
            return None

    def set(self, identity: TestIdentity, history: list[OutcomeRecord]) -> None:
        if not self.enabled or self.cache is None:
            return

        try:
            self.cache.set(self._key(identity), list(history), expire=self.ttl_seconds)
        except Exception as e:
            logger.warning(f"Cache set failed: {e}")

    def invalidate(self, identity: TestIdentity) -> None:
        if not self.enabled or self.cache is None:
            return

        try:
            self.cache.delete(self._key(identity))
        except Exception as e:
            logger.warning(f"Cache invalidate failed: {e}")

    def clear(self) -> None:
        if not self.enabled or self.cache is None:
            return

        try:
            self.cache.clear()
            logger.info("Cache cleared")
        except Exception as e:
            logger.warning(f"Cache clear failed: {e}")

    def stats(self) -> dict:
        if not self.enabled or self.cache is None:
            return {"enabled": False}

        try:
            return {
                "enabled": True,
                "size": len(self.cache),
                "directory": self.cache.directory,
                "volume": self.cache.volume(),
            }
        except Exception as e:
            logger.warning(f"Cache stats failed: {e}")
            return {"enabled": True, "error": str(e)}

    def close(self) -> None:
        if self.cache is not None:
            self.cache.close()
