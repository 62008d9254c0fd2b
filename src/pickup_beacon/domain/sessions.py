"""Domain models for pickup sessions."""

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum


class Role(StrEnum):
    """Participant slot within a session."""

    DRIVER = "driver"
    PASSENGER = "passenger"


class SessionStatus(StrEnum):
    """Lifecycle status of a session."""

    WAITING = "waiting"
    ACTIVE = "active"
    MET = "met"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in {SessionStatus.MET, SessionStatus.EXPIRED}


@dataclass(frozen=True)
class Visual:
    """Beacon color and vibration pattern derived from a session code."""

    color: str
    pattern: tuple[int, ...]

    def to_payload(self) -> dict[str, object]:
        return {"color": self.color, "pattern": list(self.pattern)}


@dataclass(frozen=True)
class Participant:
    """Location and connectivity of one side of a session."""

    last_update: datetime
    latitude: float | None = None
    longitude: float | None = None
    connected: bool = False
    name: str | None = None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {}
        if self.name is not None:
            payload["name"] = self.name
        payload.update(
            {
                "latitude": self.latitude,
                "longitude": self.longitude,
                "lastUpdate": to_epoch_ms(self.last_update),
                "connected": self.connected,
            }
        )
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "Participant":
        latitude = payload.get("latitude")
        longitude = payload.get("longitude")
        name = payload.get("name")
        return cls(
            last_update=from_epoch_ms(payload["lastUpdate"]),
            latitude=float(latitude) if latitude is not None else None,
            longitude=float(longitude) if longitude is not None else None,
            connected=bool(payload.get("connected", False)),
            name=str(name) if name is not None else None,
        )


@dataclass(frozen=True)
class SessionRecord:
    """Represents a stored pickup session."""

    code: str
    created_at: datetime
    expires_at: datetime
    driver: Participant
    passenger: Participant
    visual: Visual
    status: SessionStatus = SessionStatus.WAITING

    @property
    def driver_name(self) -> str:
        return self.driver.name or ""

    def participant(self, role: Role) -> Participant:
        return self.driver if role is Role.DRIVER else self.passenger

    def with_participant(self, role: Role, participant: Participant) -> "SessionRecord":
        if role is Role.DRIVER:
            return replace(self, driver=participant)
        return replace(self, passenger=participant)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_payload(self) -> dict[str, object]:
        """Serialize into the camelCase layout shared with clients."""
        return {
            "code": self.code,
            "createdAt": to_epoch_ms(self.created_at),
            "expiresAt": to_epoch_ms(self.expires_at),
            "driver": self.driver.to_payload(),
            "passenger": self.passenger.to_payload(),
            "visual": self.visual.to_payload(),
            "status": self.status.value,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "SessionRecord":
        visual = payload["visual"]
        return cls(
            code=str(payload["code"]),
            created_at=from_epoch_ms(payload["createdAt"]),
            expires_at=from_epoch_ms(payload["expiresAt"]),
            driver=Participant.from_payload(payload["driver"]),
            passenger=Participant.from_payload(payload["passenger"]),
            visual=Visual(
                color=str(visual["color"]),
                pattern=tuple(int(step) for step in visual["pattern"]),
            ),
            status=SessionStatus(payload.get("status", SessionStatus.WAITING)),
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """A session record together with the derived distance between parties."""

    session: SessionRecord
    distance: float | None

    def to_message(self) -> dict[str, object]:
        return {
            "type": "state",
            "session": self.session.to_payload(),
            "distance": self.distance,
        }


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: object) -> datetime:
    return datetime.fromtimestamp(float(value) / 1000, tz=UTC)
