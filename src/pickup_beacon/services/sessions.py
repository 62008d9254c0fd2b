"""Session state machine for driver/passenger pickups."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from pickup_beacon.domain.sessions import (
    Participant,
    Role,
    SessionRecord,
    SessionSnapshot,
    SessionStatus,
)
from pickup_beacon.errors import ValidationError
from pickup_beacon.services.analytics import AnalyticsService
from pickup_beacon.services.codes import generate_code
from pickup_beacon.services.geo import session_distance, validate_coordinates
from pickup_beacon.services.store import SessionStore, utc_now
from pickup_beacon.services.visuals import visual_from_code

SESSION_TTL_SECONDS = 7200
MET_TTL_SECONDS = 300

_logger = logging.getLogger(__name__)


@dataclass
class SessionService:
    """Owns the lifecycle of session records in the store.

    Every mutation reads the full record, applies the change and writes the
    whole record back. Two writers on the same code race with last-write-wins;
    each write only changes its own role's fields and clients resend location
    on their next cycle, so a lost update heals itself.
    """

    store: SessionStore
    analytics: AnalyticsService | None = None
    session_ttl_seconds: int = SESSION_TTL_SECONDS
    met_ttl_seconds: int = MET_TTL_SECONDS
    max_code_attempts: int = 10
    clock: Callable[[], datetime] = field(default=utc_now)
    code_factory: Callable[[], str] = field(default=generate_code)

    async def create_session(self, driver_name: str) -> SessionRecord:
        """Create a waiting session for a driver and return it."""
        driver_name = driver_name.strip()
        if not driver_name:
            raise ValidationError("driverName is required")
        for _ in range(self.max_code_attempts):
            code = self.code_factory()
            now = self.clock()
            record = SessionRecord(
                code=code,
                created_at=now,
                expires_at=now + timedelta(seconds=self.session_ttl_seconds),
                driver=Participant(last_update=now, name=driver_name),
                passenger=Participant(last_update=now),
                visual=visual_from_code(code),
            )
            if await self.store.add(code, record, self.session_ttl_seconds):
                _logger.info("Session created: %s", code)
                if self.analytics:
                    self.analytics.session_created(code, driver_name)
                return record
            _logger.warning("Session code collision on %s, regenerating", code)
        raise RuntimeError("Failed to allocate a unique session code")

    async def get_session(self, code: str) -> SessionRecord | None:
        """Return a live session by code, if present."""
        record = await self.store.get(code)
        if record is None or record.is_expired(self.clock()):
            return None
        return record

    async def session_exists(self, code: str) -> bool:
        return await self.get_session(code) is not None

    async def delete_session(self, code: str) -> None:
        await self.store.delete(code)

    async def snapshot(self, code: str) -> SessionSnapshot | None:
        """Return the session with the current distance between parties."""
        record = await self.get_session(code)
        if record is None:
            return None
        return SessionSnapshot(session=record, distance=session_distance(record))

    async def update_location(
        self, code: str, role: Role, latitude: float, longitude: float
    ) -> SessionRecord | None:
        """Store a participant's position and slide the session expiry.

        A missing or expired session is a no-op since expiry can race an
        in-flight update. Met sessions are left untouched so their trailing
        window is kept.
        """
        try:
            validate_coordinates(latitude, longitude)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        record = await self.get_session(code)
        if record is None:
            return None
        if record.status.is_terminal:
            return record

        now = self.clock()
        participant = replace(
            record.participant(role),
            latitude=latitude,
            longitude=longitude,
            last_update=now,
        )
        updated = record.with_participant(role, participant)
        activated = updated.status is SessionStatus.WAITING and role is Role.PASSENGER
        if activated:
            updated = replace(updated, status=SessionStatus.ACTIVE)
        updated = replace(
            updated, expires_at=now + timedelta(seconds=self.session_ttl_seconds)
        )
        await self.store.put(code, updated, self.session_ttl_seconds)
        if activated:
            _logger.info("Session activated: %s", code)
            if self.analytics:
                self.analytics.session_joined(code)
        return updated

    async def set_connected(
        self, code: str, role: Role, connected: bool
    ) -> SessionRecord | None:
        """Flag a participant as connected or disconnected."""
        record = await self.get_session(code)
        if record is None:
            return None
        participant = replace(record.participant(role), connected=connected)
        updated = record.with_participant(role, participant)
        await self.store.put(code, updated, self._remaining_ttl(updated))
        return updated

    async def mark_as_met(self, code: str) -> SessionRecord | None:
        """Complete the session and keep it for a short trailing window."""
        record = await self.get_session(code)
        if record is None:
            return None
        if record.status is SessionStatus.MET:
            return record

        now = self.clock()
        updated = replace(
            record,
            status=SessionStatus.MET,
            expires_at=now + timedelta(seconds=self.met_ttl_seconds),
        )
        await self.store.put(code, updated, self.met_ttl_seconds)
        _logger.info("Session met: %s", code)
        if self.analytics:
            self.analytics.session_completed(code)
        return updated

    def _remaining_ttl(self, record: SessionRecord) -> int:
        remaining = (record.expires_at - self.clock()).total_seconds()
        return max(1, int(remaining))
