"""Realtime gateway relaying locations between session participants."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import Protocol

from pydantic import ValidationError as PydanticValidationError

from pickup_beacon.domain.messages import (
    LocationMessage,
    MetMessage,
    connection_message,
    ended_message,
    error_message,
)
from pickup_beacon.domain.sessions import Role
from pickup_beacon.errors import (
    ConnectionClosedError,
    TransientStoreError,
    ValidationError,
)
from pickup_beacon.services.auth import ApiKeyService
from pickup_beacon.services.codes import is_valid_code
from pickup_beacon.services.registry import (
    Connection,
    ConnectionEntry,
    ConnectionRegistry,
)
from pickup_beacon.services.sessions import SessionService

_logger = logging.getLogger(__name__)


class CloseCode(IntEnum):
    """Close codes sent on the realtime channel."""

    NORMAL = 1000
    INTERNAL_ERROR = 1011
    BAD_PARAMS = 4000
    UNAUTHORIZED = 4001
    NOT_FOUND = 4004


class ConnectionState(StrEnum):
    """Lifecycle of a single realtime connection."""

    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    REGISTERED = "registered"
    CLOSED = "closed"


class RealtimeConnection(Connection, Protocol):
    """A connection the gateway can also read from."""

    async def receive_text(self) -> str | None:
        """Return the next inbound text frame, or None once disconnected."""


@dataclass(frozen=True)
class Handshake:
    """Parameters supplied when a client opens the channel."""

    code: str | None
    role: str | None
    api_key: str | None


@dataclass(eq=False)
class RealtimeClient:
    """Gateway-side state for one connected client."""

    connection: RealtimeConnection
    state: ConnectionState = ConnectionState.CONNECTING
    entry: ConnectionEntry | None = None


@dataclass
class RealtimeGateway:
    """Runs the per-connection state machine for the realtime channel."""

    session_service: SessionService
    api_key_service: ApiKeyService
    registry: ConnectionRegistry
    close_grace_seconds: float = 2.0
    _teardowns: set[asyncio.Task[None]] = field(
        default_factory=set, init=False, repr=False
    )

    async def serve(self, connection: RealtimeConnection, handshake: Handshake) -> None:
        """Serve one connection from handshake until it closes."""
        client = RealtimeClient(connection=connection)
        try:
            if not await self._open(client, handshake):
                return
            while connection.is_open:
                raw = await connection.receive_text()
                if raw is None:
                    break
                await self.handle_message(client, raw)
        finally:
            await self._disconnect(client)

    async def handle_message(self, client: RealtimeClient, raw: str) -> None:
        """Route one inbound frame; malformed frames yield an error notice."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            await self._reply(client, error_message("Invalid message format"))
            return
        if not isinstance(data, dict):
            await self._reply(client, error_message("Invalid message format"))
            return
        msg_type = data.get("type")
        if not msg_type:
            await self._reply(client, error_message("Message type is required"))
            return

        if msg_type == "location":
            handler = self._handle_location
        elif msg_type == "met":
            handler = self._handle_met
        else:
            await self._reply(client, error_message(f"Unknown message type: {msg_type}"))
            return

        try:
            await handler(client, data)
        except ValidationError as exc:
            await self._reply(client, error_message(str(exc)))
        except TransientStoreError:
            _logger.exception("Session store failed handling %s", msg_type)
            await self._reply(client, error_message("Session store unavailable"))
        except Exception:
            _logger.exception("Error handling message type %s", msg_type)
            await self._reply(client, error_message(f"Error processing {msg_type}"))

    async def end_session(self, code: str, reason: str = "met") -> None:
        """Notify everyone on a code that the session ended and tear it down."""
        await self.registry.broadcast(code, ended_message(reason))
        self._schedule_teardown(code)

    async def shutdown(self) -> None:
        """Cancel pending teardown tasks."""
        tasks = list(self._teardowns)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ---------------------- Handshake ----------------------

    async def _open(self, client: RealtimeClient, handshake: Handshake) -> bool:
        connection = client.connection
        if not handshake.api_key:
            await self._reject(
                client, CloseCode.UNAUTHORIZED, "Unauthorized: Missing API key"
            )
            return False
        principal = self.api_key_service.validate(handshake.api_key)
        if principal is None:
            await self._reject(
                client,
                CloseCode.UNAUTHORIZED,
                "Unauthorized: Invalid or expired API key",
            )
            return False
        client.state = ConnectionState.AUTHENTICATED

        role = _parse_role(handshake.role)
        code = handshake.code
        if role is None or not is_valid_code(code):
            await self._reject(
                client, CloseCode.BAD_PARAMS, "Missing or invalid code/role parameters"
            )
            return False

        try:
            exists = await self.session_service.session_exists(code)
        except TransientStoreError:
            _logger.exception("Session store failed during handshake for %s", code)
            await self._reject(
                client, CloseCode.INTERNAL_ERROR, "Session store unavailable"
            )
            return False
        if not exists:
            await self._reject(client, CloseCode.NOT_FOUND, "Session not found")
            return False

        client.entry = ConnectionEntry(connection=connection, code=code, role=role)
        await self.registry.register(client.entry)
        client.state = ConnectionState.REGISTERED
        _logger.info(
            "Client connected: %s as %s (%s)", code, role.value, principal.key_class
        )

        try:
            await self.session_service.set_connected(code, role, True)
            snapshot = await self.session_service.snapshot(code)
        except TransientStoreError:
            _logger.exception("Session store failed registering %s", code)
            await self._detach(client)
            await self._reject(
                client, CloseCode.INTERNAL_ERROR, "Session store unavailable"
            )
            return False
        if snapshot is None:
            await self._detach(client)
            await self._reject(client, CloseCode.NOT_FOUND, "Session not found")
            return False
        await self._reply(client, snapshot.to_message())
        await self.registry.broadcast(
            code, connection_message(role, True), exclude=connection
        )
        return True

    async def _detach(self, client: RealtimeClient) -> None:
        """Undo registration for a client whose peers were never told it joined."""
        if client.entry is not None:
            await self.registry.unregister(client.entry.code, client.connection)
        client.entry = None
        client.state = ConnectionState.AUTHENTICATED

    async def _reject(
        self, client: RealtimeClient, close_code: CloseCode, reason: str
    ) -> None:
        _logger.info("Rejecting realtime connection: %s (%s)", reason, int(close_code))
        if client.connection.is_open:
            try:
                await client.connection.close(int(close_code), reason)
            except ConnectionClosedError:
                pass

    # ---------------------- Message handlers ----------------------

    async def _handle_location(
        self, client: RealtimeClient, data: dict[str, object]
    ) -> None:
        try:
            message = LocationMessage.model_validate(data)
        except PydanticValidationError:
            await self._reply(
                client,
                error_message("location requires finite latitude and longitude"),
            )
            return
        entry = client.entry
        await self.session_service.update_location(
            entry.code, entry.role, message.latitude, message.longitude
        )
        snapshot = await self.session_service.snapshot(entry.code)
        if snapshot is None:
            _logger.info("Session %s vanished during location update", entry.code)
            await self.end_session(entry.code, reason="expired")
            return
        await self.registry.broadcast(entry.code, snapshot.to_message())

    async def _handle_met(self, client: RealtimeClient, data: dict[str, object]) -> None:
        MetMessage.model_validate(data)
        entry = client.entry
        await self.session_service.mark_as_met(entry.code)
        await self.end_session(entry.code, reason="met")

    # ---------------------- Teardown ----------------------

    async def _disconnect(self, client: RealtimeClient) -> None:
        previous = client.state
        client.state = ConnectionState.CLOSED
        entry = client.entry
        if previous is not ConnectionState.REGISTERED or entry is None:
            return
        _logger.info("Client disconnected: %s as %s", entry.code, entry.role.value)
        await self.registry.unregister(entry.code, client.connection)
        try:
            await self.session_service.set_connected(entry.code, entry.role, False)
        except TransientStoreError:
            _logger.exception("Failed to record disconnect for %s", entry.code)
        await self.registry.broadcast(
            entry.code, connection_message(entry.role, False)
        )

    def _schedule_teardown(self, code: str) -> None:
        task = asyncio.get_running_loop().create_task(self._close_after_grace(code))
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)

    async def _close_after_grace(self, code: str) -> None:
        await asyncio.sleep(self.close_grace_seconds)
        closed = await self.registry.close_all(
            code, int(CloseCode.NORMAL), "Session completed"
        )
        _logger.info("Closed %s connection(s) for ended session %s", closed, code)

    async def _reply(self, client: RealtimeClient, message: dict[str, object]) -> None:
        if not client.connection.is_open:
            return
        try:
            await client.connection.send_json(message)
        except ConnectionClosedError:
            _logger.debug("Reply dropped, connection already closed")


def _parse_role(value: str | None) -> Role | None:
    try:
        return Role(value)
    except ValueError:
        return None
