"""Domain models for API key authentication."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class KeyClass(StrEnum):
    """Access class of an API key."""

    ADMIN = "admin"
    TESTER = "tester"

    @property
    def is_elevated(self) -> bool:
        return self is KeyClass.ADMIN


RATE_LIMITS: dict[KeyClass, int] = {
    KeyClass.ADMIN: 1000,
    KeyClass.TESTER: 100,
}


@dataclass(frozen=True)
class Principal:
    """An authenticated caller."""

    name: str
    key_class: KeyClass
    rate_limit: int


@dataclass(frozen=True)
class ApiKeyRecord:
    """Represents a stored API key, identified by the hash of its secret."""

    key_hash: str
    name: str
    key_class: KeyClass
    enabled: bool = True
    expires_at: datetime | None = None
    last_used_at: datetime | None = None
