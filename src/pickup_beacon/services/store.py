"""Session store abstractions."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from pickup_beacon.domain.sessions import SessionRecord


class SessionStore(Protocol):
    """Key-value store of session records with a time-to-live."""

    async def put(self, code: str, record: SessionRecord, ttl_seconds: int) -> None:
        """Replace the record for a code and reset its TTL."""

    async def add(self, code: str, record: SessionRecord, ttl_seconds: int) -> bool:
        """Store the record only if the code is free; return whether it was stored."""

    async def get(self, code: str) -> SessionRecord | None:
        """Return the record for a code if present and not expired."""

    async def delete(self, code: str) -> None:
        """Remove the record for a code."""

    async def exists(self, code: str) -> bool:
        """Return true when a live record is stored for the code."""


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class _StoreEntry:
    record: SessionRecord
    expires_at: datetime


class InMemorySessionStore(SessionStore):
    """In-process session store for local runs and tests."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._entries: dict[str, _StoreEntry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def put(self, code: str, record: SessionRecord, ttl_seconds: int) -> None:
        """Store a record with a TTL."""
        async with self._lock:
            self._write(code, record, ttl_seconds)

    async def add(self, code: str, record: SessionRecord, ttl_seconds: int) -> bool:
        """Store a record unless a live one already holds the code."""
        async with self._lock:
            if self._live_entry(code) is not None:
                return False
            self._write(code, record, ttl_seconds)
            return True

    async def get(self, code: str) -> SessionRecord | None:
        """Return a record if it hasn't expired."""
        async with self._lock:
            entry = self._live_entry(code)
            return entry.record if entry else None

    async def delete(self, code: str) -> None:
        async with self._lock:
            self._entries.pop(code, None)

    async def exists(self, code: str) -> bool:
        async with self._lock:
            return self._live_entry(code) is not None

    def _write(self, code: str, record: SessionRecord, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self._entries.pop(code, None)
            return
        expires_at = self._clock() + timedelta(seconds=ttl_seconds)
        self._entries[code] = _StoreEntry(record=record, expires_at=expires_at)

    def _live_entry(self, code: str) -> _StoreEntry | None:
        entry = self._entries.get(code)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            self._entries.pop(code, None)
            return None
        return entry
