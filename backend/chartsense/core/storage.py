"""
Storage for completed analyses, keyed by analysis id.

Backends:
- In-memory (development, single worker, bounded by MAX_STORED_ANALYSES)
- Redis (production, STORAGE_BACKEND=redis with REDIS_URL)

Values are the JSON form of an AnalysisResult; routes serialize and
re-validate the model on either side.
"""
import json
import time
import logging
from abc import ABC, abstractmethod
from threading import Lock
from typing import Optional, Dict, Any, Tuple
from chartsense.core.config import get_settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "analysis:"


class StorageBackend(ABC):

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Stored value, or None if missing or expired."""

    @abstractmethod
    def set(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> bool:
        """Store with a TTL. Returns False when the value could not be saved."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """True if something was removed."""

    @abstractmethod
    def cleanup_expired(self) -> int:
        """Drop expired entries and return how many were dropped."""


class InMemoryStorage(StorageBackend):
    """
    Process-local storage. Analyses vanish on restart and are not shared
    between workers.

    When full, the entry closest to expiry makes room for a new one.
    """

    def __init__(self, max_entries: int = 500):
        self.max_entries = max_entries
        self._store: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._lock = Lock()
        logger.info(f"Using in-memory analysis storage (max {max_entries} entries)")

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if time.time() > entry[0]:
                del self._store[key]
                return None
            return entry[1]

    def set(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> bool:
        with self._lock:
            if key not in self._store and len(self._store) >= self.max_entries:
                self._drop_expired(time.time())
                if len(self._store) >= self.max_entries:
                    oldest = min(self._store, key=lambda k: self._store[k][0])
                    del self._store[oldest]
                    logger.debug(f"Storage full, evicted analysis {oldest}")
            self._store[key] = (time.time() + ttl_seconds, value)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def cleanup_expired(self) -> int:
        with self._lock:
            return self._drop_expired(time.time())

    def _drop_expired(self, now: float) -> int:
        expired = [key for key, (expires_at, _) in self._store.items() if expires_at < now]
        for key in expired:
            del self._store[key]
        return len(expired)

    def size(self) -> int:
        return len(self._store)


class RedisStorage(StorageBackend):
    """Analyses as JSON strings under ``analysis:<id>``, expired by Redis."""

    def __init__(self, redis_url: str):
        import redis
        try:
            self._client = redis.from_url(redis_url, decode_responses=True)
            self._client.ping()
        except redis.RedisError as e:
            raise RuntimeError(f"Failed to connect to Redis: {e}")
        logger.info("Connected to Redis analysis storage")

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            data = self._client.get(KEY_PREFIX + key)
        except Exception as e:
            logger.error(f"Redis get failed for analysis {key}: {e}")
            return None
        return json.loads(data) if data else None

    def set(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> bool:
        try:
            self._client.setex(KEY_PREFIX + key, ttl_seconds, json.dumps(value))
        except Exception as e:
            logger.error(f"Redis set failed for analysis {key}: {e}")
            return False
        return True

    def delete(self, key: str) -> bool:
        try:
            return self._client.delete(KEY_PREFIX + key) > 0
        except Exception as e:
            logger.error(f"Redis delete failed for analysis {key}: {e}")
            return False

    def cleanup_expired(self) -> int:
        return 0


_storage_instance: Optional[StorageBackend] = None


def get_storage() -> StorageBackend:
    """The configured backend, created on first use."""
    global _storage_instance

    if _storage_instance is None:
        settings = get_settings()
        if settings.storage_backend == 'redis':
            if not settings.redis_url:
                raise RuntimeError("REDIS_URL is required when STORAGE_BACKEND=redis")
            _storage_instance = RedisStorage(settings.redis_url)
        else:
            _storage_instance = InMemoryStorage(settings.max_stored_analyses)

    return _storage_instance


def reset_storage():
    """Forget the backend so the next get_storage() re-reads settings."""
    global _storage_instance
    _storage_instance = None
