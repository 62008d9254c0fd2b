"""In-memory registry of realtime connections grouped by session code."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

from pickup_beacon.domain.sessions import Role
from pickup_beacon.errors import ConnectionClosedError

_logger = logging.getLogger(__name__)


class Connection(Protocol):
    """A live bidirectional connection to one client."""

    @property
    def is_open(self) -> bool:
        """Return true while messages can still be sent."""

    async def send_json(self, message: dict[str, object]) -> None:
        """Send a JSON message, raising ConnectionClosedError if closed."""

    async def close(self, code: int, reason: str) -> None:
        """Close the connection with a close code and reason."""


@dataclass(frozen=True, eq=False)
class ConnectionEntry:
    """A connection attached to a session in a given role."""

    connection: Connection
    code: str
    role: Role


@dataclass(eq=False)
class _Channel:
    entries: list[ConnectionEntry] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    retired: bool = False


class ConnectionRegistry:
    """Tracks which connections are attached to which session.

    Each code gets its own channel with a lock that serializes membership
    changes for that code; broadcasts only hold it to copy the member list.
    The map lock is only held for lookups and is never held while waiting for
    a channel lock.
    """

    def __init__(self) -> None:
        self._channels: dict[str, _Channel] = {}
        self._lock = asyncio.Lock()

    async def register(self, entry: ConnectionEntry) -> None:
        """Attach a connection to its session code."""
        while True:
            async with self._lock:
                channel = self._channels.setdefault(entry.code, _Channel())
            async with channel.lock:
                if channel.retired:
                    continue
                channel.entries.append(entry)
                return

    async def unregister(self, code: str, connection: Connection) -> bool:
        """Detach a connection; return whether it was registered."""
        channel = await self._channel(code)
        if channel is None:
            return False
        async with channel.lock:
            remaining = [
                entry for entry in channel.entries if entry.connection is not connection
            ]
            removed = len(remaining) != len(channel.entries)
            channel.entries = remaining
            if not remaining and not channel.retired:
                await self._retire(code, channel)
        return removed

    async def broadcast(
        self,
        code: str,
        message: dict[str, object],
        exclude: Connection | None = None,
    ) -> int:
        """Send a message to every open connection on a code.

        Closed connections are skipped. Returns the number of deliveries.
        The channel lock is held only while copying the member list.
        """
        channel = await self._channel(code)
        if channel is None:
            return 0
        async with channel.lock:
            targets = [
                entry for entry in channel.entries if entry.connection is not exclude
            ]
        delivered = 0
        for entry in targets:
            if await _send(entry, message):
                delivered += 1
        return delivered

    async def close_all(self, code: str, close_code: int, reason: str) -> int:
        """Detach and close every connection on a code."""
        channel = await self._channel(code)
        if channel is None:
            return 0
        async with channel.lock:
            entries = channel.entries
            channel.entries = []
            if not channel.retired:
                await self._retire(code, channel)
        closed = 0
        for entry in entries:
            if not entry.connection.is_open:
                continue
            try:
                await entry.connection.close(close_code, reason)
            except ConnectionClosedError:
                continue
            closed += 1
        return closed

    async def connection_count(self, code: str) -> int:
        channel = await self._channel(code)
        if channel is None:
            return 0
        async with channel.lock:
            return len(channel.entries)

    async def roles(self, code: str) -> list[Role]:
        channel = await self._channel(code)
        if channel is None:
            return []
        async with channel.lock:
            return [entry.role for entry in channel.entries]

    async def _channel(self, code: str) -> _Channel | None:
        async with self._lock:
            return self._channels.get(code)

    async def _retire(self, code: str, channel: _Channel) -> None:
        channel.retired = True
        async with self._lock:
            if self._channels.get(code) is channel:
                del self._channels[code]


async def _send(entry: ConnectionEntry, message: dict[str, object]) -> bool:
    if not entry.connection.is_open:
        return False
    try:
        await entry.connection.send_json(message)
    except ConnectionClosedError:
        _logger.debug("Skipped closed connection on %s (%s)", entry.code, entry.role)
        return False
    return True
