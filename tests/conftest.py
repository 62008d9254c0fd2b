"""Shared test fixtures."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from pickup_beacon.config import Settings
from pickup_beacon.containers import AppContainer
from pickup_beacon.domain.analytics import SessionEvent, SessionEventType
from pickup_beacon.domain.auth import ApiKeyRecord
from pickup_beacon.domain.sessions import Role
from pickup_beacon.errors import ConnectionClosedError
from pickup_beacon.services.analytics import AnalyticsService, SessionEventRepository
from pickup_beacon.services.auth import ApiKeyRepository, ApiKeyService
from pickup_beacon.services.gateway import RealtimeGateway
from pickup_beacon.services.registry import Connection, ConnectionRegistry
from pickup_beacon.services.sessions import SessionService
from pickup_beacon.services.store import InMemorySessionStore

ADMIN_KEY = "admin-key"
TESTER_KEY = "tester-key"


@dataclass
class FakeClock:
    """Manually advanced UTC clock."""

    now: datetime = field(default_factory=lambda: datetime(2026, 1, 1, 12, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class InMemoryApiKeyRepository(ApiKeyRepository):
    """In-memory API key repository for tests."""

    keys: dict[str, ApiKeyRecord] = field(default_factory=dict)
    touched: list[str] = field(default_factory=list)
    fail: bool = False

    def get_by_hash(self, key_hash: str) -> ApiKeyRecord | None:
        if self.fail:
            raise RuntimeError("lookup failed")
        return self.keys.get(key_hash)

    def touch_last_used(self, key_hash: str, used_at: datetime) -> None:
        self.touched.append(key_hash)


@dataclass
class InMemorySessionEventRepository(SessionEventRepository):
    """In-memory analytics repository for tests."""

    events: list[SessionEvent] = field(default_factory=list)
    fail: bool = False

    def create_event(self, event: SessionEvent) -> None:
        if self.fail:
            raise RuntimeError("insert failed")
        self.events.append(event)

    def list_events_since(self, since: datetime, limit: int) -> list[SessionEvent]:
        newest_first = sorted(
            reversed(self.events), key=lambda event: event.occurred_at, reverse=True
        )
        return [event for event in newest_first if event.occurred_at >= since][:limit]

    def count_events(
        self,
        event_type: SessionEventType,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> int:
        return sum(
            1
            for event in self.events
            if event.event_type is event_type
            and (start is None or event.occurred_at >= start)
            and (end is None or event.occurred_at < end)
        )


@dataclass(eq=False)
class FakeConnection(Connection):
    """Connection that records what was sent to it."""

    name: str = "conn"
    open: bool = True
    sent: list[dict[str, object]] = field(default_factory=list)
    closed_with: tuple[int, str] | None = None

    @property
    def is_open(self) -> bool:
        return self.open

    async def send_json(self, message: dict[str, object]) -> None:
        if not self.open:
            raise ConnectionClosedError
        self.sent.append(message)

    async def close(self, code: int, reason: str) -> None:
        self.open = False
        self.closed_with = (code, reason)

    def of_type(self, message_type: str) -> list[dict[str, object]]:
        return [message for message in self.sent if message.get("type") == message_type]


def ws_url(code: str, role: Role | str, api_key: str | None = TESTER_KEY) -> str:
    role_value = role.value if isinstance(role, Role) else role
    url = f"/ws?code={code}&role={role_value}"
    if api_key is not None:
        url += f"&apiKey={api_key}"
    return url


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="test.service.key",
        admin_api_key=ADMIN_KEY,
        tester_api_key=TESTER_KEY,
        session_store_backend="memory",
        close_grace_seconds=0.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def event_repository() -> InMemorySessionEventRepository:
    return InMemorySessionEventRepository()


@pytest.fixture
def api_key_repository() -> InMemoryApiKeyRepository:
    return InMemoryApiKeyRepository()


@pytest.fixture
def store(clock: FakeClock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def session_service(
    store: InMemorySessionStore,
    clock: FakeClock,
    event_repository: InMemorySessionEventRepository,
) -> SessionService:
    return SessionService(
        store=store,
        analytics=AnalyticsService(event_repository, clock=clock),
        clock=clock,
    )


@pytest.fixture
def container(
    settings: Settings,
    store: InMemorySessionStore,
    session_service: SessionService,
    api_key_repository: InMemoryApiKeyRepository,
) -> AppContainer:
    api_key_service = ApiKeyService(
        repository=api_key_repository,
        admin_api_key=settings.admin_api_key,
        tester_api_key=settings.tester_api_key,
    )
    registry = ConnectionRegistry()
    gateway = RealtimeGateway(
        session_service=session_service,
        api_key_service=api_key_service,
        registry=registry,
        close_grace_seconds=settings.close_grace_seconds,
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        session_store=store,
        session_service=session_service,
        api_key_service=api_key_service,
        analytics_service=session_service.analytics,
        connection_registry=registry,
        gateway=gateway,
        close_resources=close_resources,
    )
