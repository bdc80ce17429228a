"""In-memory TTL cache for search responses."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached value with its expiry timestamp."""
    data: Any
    timestamp: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class TTLCache:
    """Per-process cache; entries expire ``ttl_seconds`` after being stored."""

    def __init__(
        self,
        ttl_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Lifetime of each entry
            clock: Time source, overridable in tests
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            logger.debug(f"Cache expired: {key}")
            del self._entries[key]
            return None

        return entry.data

    def set(self, key: str, data: Any) -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(
            data=data,
            timestamp=now,
            expires_at=now + self.ttl_seconds,
        )

    def cleanup(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
