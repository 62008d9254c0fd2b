"""Redis-backed session store."""

import json
import logging
from dataclasses import dataclass

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from pickup_beacon.domain.sessions import SessionRecord
from pickup_beacon.errors import TransientStoreError
from pickup_beacon.services.store import SessionStore

_KEY_PREFIX = "session:"

_logger = logging.getLogger(__name__)


@dataclass
class RedisSessionStore(SessionStore):
    """Session store keeping JSON records under ``session:<code>`` with EX."""

    client: aioredis.Redis

    @classmethod
    def create(cls, redis_url: str) -> "RedisSessionStore":
        """Create a store with a lazily connecting client."""
        return cls(client=aioredis.from_url(redis_url, decode_responses=True))

    async def put(self, code: str, record: SessionRecord, ttl_seconds: int) -> None:
        """Replace the record and reset its expiry."""
        try:
            if ttl_seconds <= 0:
                await self.client.delete(_key(code))
                return
            await self.client.set(_key(code), _dump(record), ex=ttl_seconds)
        except RedisError as exc:
            raise TransientStoreError(f"Failed to store session {code}") from exc

    async def add(self, code: str, record: SessionRecord, ttl_seconds: int) -> bool:
        """Store the record only if no record holds the code."""
        if ttl_seconds <= 0:
            return False
        try:
            created = await self.client.set(
                _key(code), _dump(record), ex=ttl_seconds, nx=True
            )
        except RedisError as exc:
            raise TransientStoreError(f"Failed to create session {code}") from exc
        return bool(created)

    async def get(self, code: str) -> SessionRecord | None:
        """Return the stored record, if present."""
        try:
            raw = await self.client.get(_key(code))
        except RedisError as exc:
            raise TransientStoreError(f"Failed to load session {code}") from exc
        if raw is None:
            return None
        try:
            return SessionRecord.from_payload(json.loads(raw))
        except (KeyError, TypeError, ValueError):
            _logger.warning("Discarding unreadable session record %s", code)
            return None

    async def delete(self, code: str) -> None:
        try:
            await self.client.delete(_key(code))
        except RedisError as exc:
            raise TransientStoreError(f"Failed to delete session {code}") from exc

    async def exists(self, code: str) -> bool:
        try:
            return await self.client.exists(_key(code)) == 1
        except RedisError as exc:
            raise TransientStoreError(f"Failed to check session {code}") from exc

    async def close(self) -> None:
        """Close the underlying Redis connection pool."""
        await self.client.aclose()


def _key(code: str) -> str:
    return f"{_KEY_PREFIX}{code}"


def _dump(record: SessionRecord) -> str:
    return json.dumps(record.to_payload(), separators=(",", ":"))
