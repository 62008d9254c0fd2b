"""Tests for the realtime channel."""

import asyncio
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from pickup_beacon.api.app import create_app
from pickup_beacon.containers import AppContainer
from pickup_beacon.domain.sessions import Role, SessionSnapshot
from pickup_beacon.services.gateway import (
    CloseCode,
    Handshake,
    RealtimeClient,
    RealtimeGateway,
)
from pickup_beacon.services.registry import ConnectionEntry
from pickup_beacon.services.sessions import SessionService
from pickup_beacon.services.store import InMemorySessionStore
from tests.conftest import ADMIN_KEY, FakeClock, FakeConnection, ws_url


@pytest.fixture
def client(container: AppContainer) -> Iterator[TestClient]:
    with TestClient(create_app(container)) as test_client:
        yield test_client


def _create(client: TestClient) -> str:
    response = client.post(
        "/v1/sessions",
        json={"driverName": "Sam"},
        headers={"Authorization": f"Bearer {ADMIN_KEY}"},
    )
    return response.json()["code"]


def _expect_close(websocket, code: int) -> str:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        websocket.receive_json()
    assert exc_info.value.code == code
    return exc_info.value.reason


def test_missing_api_key_is_rejected(client: TestClient) -> None:
    code = _create(client)

    with client.websocket_connect(ws_url(code, Role.DRIVER, api_key=None)) as ws:
        reason = _expect_close(ws, CloseCode.UNAUTHORIZED)

    assert reason == "Unauthorized: Missing API key"


def test_invalid_api_key_is_rejected(client: TestClient) -> None:
    code = _create(client)

    with client.websocket_connect(ws_url(code, Role.DRIVER, api_key="wrong")) as ws:
        reason = _expect_close(ws, CloseCode.UNAUTHORIZED)

    assert reason == "Unauthorized: Invalid or expired API key"


@pytest.mark.parametrize("role", ["pilot", ""])
def test_invalid_role_is_rejected(client: TestClient, role: str) -> None:
    code = _create(client)

    with client.websocket_connect(ws_url(code, role)) as ws:
        reason = _expect_close(ws, CloseCode.BAD_PARAMS)

    assert reason == "Missing or invalid code/role parameters"


def test_malformed_code_is_rejected(client: TestClient) -> None:
    with client.websocket_connect(ws_url("abc", Role.DRIVER)) as ws:
        _expect_close(ws, CloseCode.BAD_PARAMS)


def test_unknown_session_is_rejected(client: TestClient) -> None:
    with client.websocket_connect(ws_url("ZZZZZZ", Role.PASSENGER)) as ws:
        reason = _expect_close(ws, CloseCode.NOT_FOUND)

    assert reason == "Session not found"


def test_bearer_header_is_accepted(client: TestClient) -> None:
    code = _create(client)

    with client.websocket_connect(
        ws_url(code, Role.DRIVER, api_key=None),
        headers={"Authorization": f"Bearer {ADMIN_KEY}"},
    ) as ws:
        state = ws.receive_json()

    assert state["type"] == "state"


def test_connect_sends_state_and_notifies_peer(
    client: TestClient, container: AppContainer
) -> None:
    code = _create(client)

    with client.websocket_connect(ws_url(code, Role.DRIVER)) as driver:
        state = driver.receive_json()
        assert state["type"] == "state"
        assert state["distance"] is None
        assert state["session"]["code"] == code
        assert state["session"]["driver"]["connected"] is True

        with client.websocket_connect(ws_url(code, Role.PASSENGER)) as passenger:
            passenger_state = passenger.receive_json()
            assert passenger_state["session"]["passenger"]["connected"] is True
            assert driver.receive_json() == {
                "type": "connection",
                "role": "passenger",
                "connected": True,
            }

        assert driver.receive_json() == {
            "type": "connection",
            "role": "passenger",
            "connected": False,
        }

        count = client.portal.call(container.connection_registry.connection_count, code)
        assert count == 1
        record = client.portal.call(container.session_service.get_session, code)
        assert record.driver.connected
        assert not record.passenger.connected


def test_location_updates_broadcast_same_distance(client: TestClient) -> None:
    code = _create(client)

    with (
        client.websocket_connect(ws_url(code, Role.DRIVER)) as driver,
        client.websocket_connect(ws_url(code, Role.PASSENGER)) as passenger,
    ):
        driver.receive_json()
        passenger.receive_json()
        driver.receive_json()  # passenger connected

        driver.send_json({"type": "location", "latitude": 0.0, "longitude": 0.0})
        first_driver = driver.receive_json()
        first_passenger = passenger.receive_json()
        assert first_driver["distance"] is None
        assert first_driver == first_passenger
        assert first_driver["session"]["status"] == "waiting"

        passenger.send_json(
            {"type": "location", "latitude": 0.001, "longitude": 0.0, "accuracy": 5}
        )
        second_driver = driver.receive_json()
        second_passenger = passenger.receive_json()

    assert second_driver == second_passenger
    assert second_driver["session"]["status"] == "active"
    assert second_driver["distance"] == pytest.approx(111.19, abs=0.01)


def test_malformed_messages_get_errors_and_channel_stays_open(
    client: TestClient,
) -> None:
    code = _create(client)

    with client.websocket_connect(ws_url(code, Role.DRIVER)) as driver:
        driver.receive_json()

        driver.send_text("not json")
        assert driver.receive_json() == {
            "type": "error",
            "message": "Invalid message format",
        }

        driver.send_json({"latitude": 1.0})
        assert driver.receive_json()["message"] == "Message type is required"

        driver.send_json({"type": "dance"})
        assert driver.receive_json()["message"] == "Unknown message type: dance"

        driver.send_json({"type": "location", "latitude": 200.0, "longitude": 0.0})
        assert driver.receive_json() == {
            "type": "error",
            "message": "location requires finite latitude and longitude",
        }

        driver.send_json({"type": "location", "latitude": 1.0, "longitude": 1.0})
        state = driver.receive_json()

    assert state["type"] == "state"
    assert state["session"]["driver"]["latitude"] == 1.0


def test_met_ends_session_and_closes_everyone(client: TestClient) -> None:
    code = _create(client)

    with (
        client.websocket_connect(ws_url(code, Role.DRIVER)) as driver,
        client.websocket_connect(ws_url(code, Role.PASSENGER)) as passenger,
    ):
        driver.receive_json()
        passenger.receive_json()
        driver.receive_json()  # passenger connected

        passenger.send_json({"type": "met"})

        assert driver.receive_json() == {"type": "ended", "reason": "met"}
        assert passenger.receive_json() == {"type": "ended", "reason": "met"}
        assert _expect_close(driver, CloseCode.NORMAL) == "Session completed"
        assert _expect_close(passenger, CloseCode.NORMAL) == "Session completed"

    details = client.get(f"/v1/sessions/{code}").json()
    assert details["status"] == "met"


def test_http_end_notifies_connected_clients(client: TestClient) -> None:
    code = _create(client)

    with client.websocket_connect(ws_url(code, Role.PASSENGER)) as passenger:
        passenger.receive_json()

        response = client.post(f"/v1/sessions/{code}/end", json={"role": "driver"})

        assert response.status_code == 200
        assert passenger.receive_json() == {"type": "ended", "reason": "met"}
        _expect_close(passenger, CloseCode.NORMAL)


def test_location_on_vanished_session_ends_channel(
    client: TestClient, container: AppContainer
) -> None:
    code = _create(client)

    with client.websocket_connect(ws_url(code, Role.DRIVER)) as driver:
        driver.receive_json()
        client.portal.call(container.session_service.delete_session, code)

        driver.send_json({"type": "location", "latitude": 1.0, "longitude": 1.0})

        assert driver.receive_json() == {"type": "ended", "reason": "expired"}
        _expect_close(driver, CloseCode.NORMAL)


def test_disconnect_before_registration_is_silent(container: AppContainer) -> None:
    gateway = container.gateway
    connection = FakeConnection()

    async def scenario() -> None:
        client = RealtimeClient(connection=connection)
        await gateway._disconnect(client)
        await gateway._disconnect(client)

    asyncio.run(scenario())

    assert connection.sent == []


def test_disconnect_notifies_once(container: AppContainer) -> None:
    gateway = container.gateway
    registry = container.connection_registry

    async def scenario() -> tuple[FakeConnection, int]:
        record = await container.session_service.create_session("Sam")
        driver = FakeConnection("driver")
        passenger = FakeConnection("passenger")
        await registry.register(
            ConnectionEntry(connection=driver, code=record.code, role=Role.DRIVER)
        )
        client = RealtimeClient(connection=passenger)
        opened = await gateway._open(
            client, Handshake(code=record.code, role="passenger", api_key=ADMIN_KEY)
        )
        assert opened
        await gateway._disconnect(client)
        await gateway._disconnect(client)
        return driver, await registry.connection_count(record.code)

    driver, count = asyncio.run(scenario())

    notices = driver.of_type("connection")
    assert notices == [
        {"type": "connection", "role": "passenger", "connected": True},
        {"type": "connection", "role": "passenger", "connected": False},
    ]
    assert count == 1


class VanishingSessionService(SessionService):
    """Session service whose sessions disappear right after connecting."""

    async def snapshot(self, code: str) -> SessionSnapshot | None:
        return None


def test_session_vanishing_during_handshake_leaves_peers_untouched(
    container: AppContainer, store: InMemorySessionStore, clock: FakeClock
) -> None:
    registry = container.connection_registry
    gateway = RealtimeGateway(
        session_service=VanishingSessionService(store=store, clock=clock),
        api_key_service=container.api_key_service,
        registry=registry,
        close_grace_seconds=0.0,
    )

    async def scenario() -> tuple[FakeConnection, FakeConnection, int]:
        record = await container.session_service.create_session("Sam")
        driver = FakeConnection("driver")
        passenger = FakeConnection("passenger")
        await registry.register(
            ConnectionEntry(connection=driver, code=record.code, role=Role.DRIVER)
        )
        client = RealtimeClient(connection=passenger)
        opened = await gateway._open(
            client, Handshake(code=record.code, role="passenger", api_key=ADMIN_KEY)
        )
        assert not opened
        await gateway._disconnect(client)
        return driver, passenger, await registry.connection_count(record.code)

    driver, passenger, count = asyncio.run(scenario())

    assert passenger.closed_with == (CloseCode.NOT_FOUND, "Session not found")
    assert driver.sent == []
    assert count == 1


def test_location_requires_json_numbers(client: TestClient) -> None:
    code = _create(client)

    with client.websocket_connect(ws_url(code, Role.DRIVER)) as driver:
        driver.receive_json()

        driver.send_json({"type": "location", "latitude": "12.5", "longitude": 1.0})
        as_string = driver.receive_json()
        driver.send_json({"type": "location", "latitude": True, "longitude": 1.0})
        as_bool = driver.receive_json()
        driver.send_json({"type": "location", "latitude": 12, "longitude": 1.5})
        as_int = driver.receive_json()

    assert as_string == {
        "type": "error",
        "message": "location requires finite latitude and longitude",
    }
    assert as_bool["type"] == "error"
    assert as_int["type"] == "state"
    assert as_int["session"]["driver"]["latitude"] == 12.0
