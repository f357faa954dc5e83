"""
In-memory TTL cache shared by integration runs.

One instance lives for the lifetime of the process (created in the app
lifespan and handed to the services that need it). With several worker
processes each worker holds its own cache; there is no cross-process
invalidation.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from fantasy_hub.config import settings

logger = logging.getLogger(__name__)


# Key classes, checked in order against the key text
KEY_CLASS_PATTERNS = [
    ("predictions", ("prediction", "ffh")),
    ("rosters", ("roster", "sleeper", "ownership")),
    ("matches", ("match",)),
    ("ratios", ("ratio", "scoring", "ruleset")),
]


def default_ttls() -> Dict[str, int]:
    return {
        "predictions": settings.cache_ttl_predictions,
        "rosters": settings.cache_ttl_rosters,
        "matches": settings.cache_ttl_matches,
        "ratios": settings.cache_ttl_ratios,
        "default": settings.cache_ttl_default,
    }


@dataclass
class CacheEntry:
    payload: Any
    created_at: float
    ttl_seconds: float
    key_class: str

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) >= self.ttl_seconds


class CacheService:
    """
    Key/value store with a per-key-class time-to-live.

    Reads past the TTL behave like a miss and evict the entry. Writes are
    last-writer-wins.
    """

    def __init__(
        self,
        ttls: Optional[Dict[str, int]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._entries: Dict[str, CacheEntry] = {}
        self._ttls = ttls or default_ttls()
        self._clock = clock
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def key_class(key: str) -> str:
        """Infer the key class from substrings of the key."""
        lowered = key.lower()
        for key_class, needles in KEY_CLASS_PATTERNS:
            if any(needle in lowered for needle in needles):
                return key_class
        return "default"

    def ttl_for(self, key: str) -> int:
        key_class = self.key_class(key)
        return self._ttls.get(key_class, self._ttls.get("default", 300))

    def get(self, key: str) -> Optional[Any]:
        """Return the cached payload, or None if absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                # Expired, remove from cache
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.payload

    def set(self, key: str, payload: Any, ttl: Optional[float] = None) -> None:
        """Cache a payload. ``ttl`` overrides the key-class default."""
        entry = CacheEntry(
            payload=payload,
            created_at=self._clock(),
            ttl_seconds=ttl if ttl is not None else self.ttl_for(key),
            key_class=self.key_class(key),
        )
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``. Returns count removed."""
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.info("Invalidated %d cache entries with prefix %r", len(keys), prefix)
        return len(keys)

    def clear(self) -> None:
        """Clear entire cache."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def cleanup_expired(self) -> int:
        """Remove expired entries. Returns count of removed entries."""
        now = self._clock()
        with self._lock:
            expired_keys = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired_keys:
                del self._entries[key]
        if expired_keys:
            logger.debug("Cache cleanup removed %d expired entries", len(expired_keys))
        return len(expired_keys)

    def get_stats(self) -> Dict[str, Any]:
        """Cache statistics for monitoring."""
        now = self._clock()
        with self._lock:
            entries = list(self._entries.values())
            hits, misses = self._hits, self._misses

        by_class: Dict[str, int] = {}
        for entry in entries:
            by_class[entry.key_class] = by_class.get(entry.key_class, 0) + 1

        lookups = hits + misses
        return {
            "total_entries": len(entries),
            "by_class": by_class,
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / lookups * 100, 1) if lookups else 0.0,
            "oldest_entry_age": round(max(e.age(now) for e in entries), 1) if entries else None,
            "newest_entry_age": round(min(e.age(now) for e in entries), 1) if entries else None,
        }

    def __len__(self) -> int:
        return len(self._entries)
