"""WebSocket endpoint for the realtime channel."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from pickup_beacon.errors import ConnectionClosedError
from pickup_beacon.services.auth import parse_bearer
from pickup_beacon.services.gateway import Handshake

if TYPE_CHECKING:
    from pickup_beacon.containers import AppContainer

router = APIRouter()


class WebSocketConnection:
    """Adapts a Starlette WebSocket to the gateway's connection interface."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.application_state == WebSocketState.CONNECTED
            and self.websocket.client_state == WebSocketState.CONNECTED
        )

    async def send_json(self, message: dict[str, object]) -> None:
        if not self.is_open:
            raise ConnectionClosedError
        try:
            await self.websocket.send_json(message)
        except (RuntimeError, OSError, WebSocketDisconnect) as exc:
            raise ConnectionClosedError from exc

    async def close(self, code: int, reason: str) -> None:
        try:
            await self.websocket.close(code=code, reason=reason)
        except (RuntimeError, OSError) as exc:
            raise ConnectionClosedError from exc

    async def receive_text(self) -> str | None:
        if not self.is_open:
            return None
        try:
            message = await self.websocket.receive()
        except (RuntimeError, WebSocketDisconnect):
            return None
        if message["type"] == "websocket.disconnect":
            return None
        text = message.get("text")
        if text is None:
            data = message.get("bytes") or b""
            text = data.decode("utf-8", errors="replace")
        return text


@router.websocket("/ws")
async def realtime_channel(websocket: WebSocket) -> None:
    """Attach a driver or passenger to a session's live channel."""
    container: AppContainer = websocket.app.state.container
    # Accept first so rejections carry a close code the client can read.
    await websocket.accept()
    params = websocket.query_params
    handshake = Handshake(
        code=params.get("code"),
        role=params.get("role"),
        api_key=params.get("apiKey")
        or parse_bearer(websocket.headers.get("authorization")),
    )
    await container.gateway.serve(WebSocketConnection(websocket), handshake)
