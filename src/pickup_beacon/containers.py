"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from pickup_beacon.adapters.redis_session_store import RedisSessionStore
from pickup_beacon.adapters.supabase_api_key_repository import (
    SupabaseApiKeyRepository,
)
from pickup_beacon.adapters.supabase_session_event_repository import (
    SupabaseSessionEventRepository,
)
from pickup_beacon.config import Settings
from pickup_beacon.services.analytics import AnalyticsService
from pickup_beacon.services.auth import ApiKeyService
from pickup_beacon.services.gateway import RealtimeGateway
from pickup_beacon.services.registry import ConnectionRegistry
from pickup_beacon.services.sessions import SessionService
from pickup_beacon.services.store import InMemorySessionStore, SessionStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    session_store: SessionStore
    session_service: SessionService
    api_key_service: ApiKeyService
    analytics_service: AnalyticsService
    connection_registry: ConnectionRegistry
    gateway: RealtimeGateway
    close_resources: Callable[[], Awaitable[None]]


def build_session_store(settings: Settings) -> SessionStore:
    """Create the session store selected by settings."""
    backend = settings.session_store_backend.strip().lower()
    if backend == "memory":
        return InMemorySessionStore()
    if backend == "redis":
        return RedisSessionStore.create(settings.redis_url)
    raise ValueError(f"Unknown session store backend: {settings.session_store_backend}")


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    session_store = build_session_store(resolved_settings)
    analytics_service = AnalyticsService(
        SupabaseSessionEventRepository(supabase_client)
    )
    session_service = SessionService(
        store=session_store,
        analytics=analytics_service,
        session_ttl_seconds=resolved_settings.session_ttl_seconds,
        met_ttl_seconds=resolved_settings.met_ttl_seconds,
    )
    api_key_service = ApiKeyService(
        repository=SupabaseApiKeyRepository(supabase_client),
        admin_api_key=resolved_settings.admin_api_key,
        tester_api_key=resolved_settings.tester_api_key,
    )
    connection_registry = ConnectionRegistry()
    gateway = RealtimeGateway(
        session_service=session_service,
        api_key_service=api_key_service,
        registry=connection_registry,
        close_grace_seconds=resolved_settings.close_grace_seconds,
    )

    async def close_resources() -> None:
        if isinstance(session_store, RedisSessionStore):
            await session_store.close()

    return AppContainer(
        settings=resolved_settings,
        session_store=session_store,
        session_service=session_service,
        api_key_service=api_key_service,
        analytics_service=analytics_service,
        connection_registry=connection_registry,
        gateway=gateway,
        close_resources=close_resources,
    )
