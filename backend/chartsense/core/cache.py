"""
In-memory TTL cache for decoded tables.

Re-uploading the same file skips decoding and type inference: the
normalized TypedTable is cached under a hash of the file content.
"""
import hashlib
import logging
import time
from typing import Optional, Dict, Any
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)

TABLE_CACHE_TTL_SECONDS = 1800


@dataclass
class CacheEntry:
    data: Any
    expires_at: float


class SimpleCache:
    """Thread-safe in-memory cache with per-entry TTL and hit counters."""

    def __init__(self, default_ttl: float = 3600, max_entries: int = 256):
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = Lock()
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self.misses += 1
                return None

            if time.monotonic() > entry.expires_at:
                del self._cache[key]
                self.misses += 1
                logger.debug(f"Cache entry expired: {key[:16]}...")
                return None

            self.hits += 1
            return entry.data

    def set(self, key: str, value: Any, ttl: Optional[float] = None):
        """Set value in cache; the oldest entry is evicted when full."""
        ttl = ttl or self.default_ttl
        with self._lock:
            if key not in self._cache and len(self._cache) >= self.max_entries:
                oldest = next(iter(self._cache))
                del self._cache[oldest]
            self._cache[key] = CacheEntry(data=value, expires_at=time.monotonic() + ttl)
            logger.debug(f"Cache set: {key[:16]}... (TTL: {ttl}s)")

    def clear(self):
        with self._lock:
            self._cache.clear()
            self.hits = 0
            self.misses = 0
            logger.info("Cache cleared")

    def cleanup_expired(self) -> int:
        """Remove expired entries and return how many were dropped."""
        with self._lock:
            now = time.monotonic()
            expired_keys = [key for key, entry in self._cache.items() if now > entry.expires_at]
            for key in expired_keys:
                del self._cache[key]
        if expired_keys:
            logger.debug(f"Cleaned up {len(expired_keys)} expired cache entries")
        return len(expired_keys)

    def get_stats(self) -> Dict[str, Any]:
        self.cleanup_expired()
        with self._lock:
            return {
                'size': len(self._cache),
                'max_entries': self.max_entries,
                'default_ttl': self.default_ttl,
                'hits': self.hits,
                'misses': self.misses,
            }


_table_cache = SimpleCache(default_ttl=TABLE_CACHE_TTL_SECONDS)


def get_table_cache() -> SimpleCache:
    """Cache of normalized tables keyed by file content."""
    return _table_cache


def generate_table_cache_key(file_content: bytes, filename: str) -> str:
    """Key on content and extension, so the same bytes decoded differently never collide."""
    content_hash = hashlib.sha256(file_content).hexdigest()
    extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    return f"table:{extension}:{content_hash}"
