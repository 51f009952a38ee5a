"""Best-effort key-value persistence for engine and configuration state.

Every backend stores JSON blobs under ``settings.storage_key_prefix + key``.
Failures (backend down, quota, corrupt JSON, not connected) are logged and
swallowed: ``load`` returns None, ``save``/``delete`` return False. The
in-memory state of the caller stays authoritative for the session.
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from crashgame.config import settings
from crashgame.errors import GameError, PersistenceFailure

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """JSON key-value store that never raises into game code."""

    def __init__(self, prefix: str | None = None):
        self._prefix = settings.storage_key_prefix if prefix is None else prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def connect(self) -> None:
        """Open the backend connection (no-op by default)."""

    async def close(self) -> None:
        """Close the backend connection (no-op by default)."""

    @abstractmethod
    async def _read(self, key: str) -> str | None:
        """Return the raw stored string or None."""

    @abstractmethod
    async def _write(self, key: str, raw: str) -> None:
        """Store a raw string."""

    @abstractmethod
    async def _remove(self, key: str) -> None:
        """Remove a key."""

    async def load(self, key: str) -> dict[str, Any] | None:
        """Load a blob. Returns None if missing or unreadable."""
        try:
            raw = await self._read(self._key(key))
            if raw is None:
                return None
            data = json.loads(raw)
        except (RedisError, PersistenceFailure, ValueError) as e:
            logger.warning("Failed to load %s from storage: %s", key, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object blob stored under %s", key)
            return None
        return data

    async def save(self, key: str, blob: dict[str, Any]) -> bool:
        """Save a blob. Returns False if the write failed."""
        try:
            raw = json.dumps(blob, sort_keys=True, separators=(",", ":"))
            await self._write(self._key(key), raw)
        except (RedisError, PersistenceFailure, TypeError, ValueError) as e:
            logger.warning("Failed to save %s to storage: %s", key, e)
            return False
        return True

    async def delete(self, key: str) -> bool:
        """Delete a blob. Returns False if the delete failed."""
        try:
            await self._remove(self._key(key))
        except (RedisError, PersistenceFailure) as e:
            logger.warning("Failed to delete %s from storage: %s", key, e)
            return False
        return True


class MemoryStore(KeyValueStore):
    """Process-local store; values are kept serialized like a real backend."""

    def __init__(self, prefix: str | None = None):
        super().__init__(prefix)
        self._data: dict[str, str] = {}

    async def _read(self, key: str) -> str | None:
        return self._data.get(key)

    async def _write(self, key: str, raw: str) -> None:
        self._data[key] = raw

    async def _remove(self, key: str) -> None:
        self._data.pop(key, None)


class RedisStore(KeyValueStore):
    """Redis-backed store."""

    def __init__(self, redis_url: str | None = None, prefix: str | None = None):
        super().__init__(prefix)
        self._url = redis_url or settings.redis_url
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raise if not connected."""
        if self._client is None:
            raise PersistenceFailure("Redis not connected")
        return self._client

    async def _read(self, key: str) -> str | None:
        return await self.client.get(key)

    async def _write(self, key: str, raw: str) -> None:
        await self.client.set(key, raw)

    async def _remove(self, key: str) -> None:
        await self.client.delete(key)


def create_store() -> KeyValueStore:
    """Build the backend selected by settings."""
    if settings.storage_backend == "redis":
        return RedisStore()
    return MemoryStore()


class PersistedConfig(ABC):
    """Configuration object that round-trips through a KeyValueStore."""

    STORAGE_KEY: str = ""

    def __init__(self, storage: KeyValueStore):
        self._storage = storage

    @abstractmethod
    def to_blob(self) -> dict[str, Any]:
        """Serialize current state."""

    @abstractmethod
    def apply_blob(self, blob: dict[str, Any]) -> None:
        """Restore state from a stored blob; raise ValueError if unusable."""

    async def load(self) -> bool:
        """Restore persisted state. Returns True if a stored blob was applied."""
        blob = await self._storage.load(self.STORAGE_KEY)
        if blob is None:
            return False
        try:
            self.apply_blob(blob)
        except (KeyError, TypeError, ValueError, GameError) as e:
            logger.warning("Ignoring invalid %s blob, keeping defaults: %s", self.STORAGE_KEY, e)
            return False
        return True

    async def save(self) -> bool:
        """Persist current state (best-effort)."""
        return await self._storage.save(self.STORAGE_KEY, self.to_blob())
