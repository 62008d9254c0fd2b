"""API key authentication."""

import hashlib
import hmac
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from pickup_beacon.domain.auth import RATE_LIMITS, ApiKeyRecord, KeyClass, Principal

_logger = logging.getLogger(__name__)


class ApiKeyRepository(Protocol):
    """Persistence interface for issued API keys."""

    def get_by_hash(self, key_hash: str) -> ApiKeyRecord | None:
        """Return the key stored under a hash, if present."""

    def touch_last_used(self, key_hash: str, used_at: datetime) -> None:
        """Record when a key was last used."""


def hash_api_key(api_key: str) -> str:
    """Return the SHA-256 hex digest used to look keys up."""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def parse_bearer(header: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:  # noqa: PLR2004
        return None
    return parts[1]


@dataclass
class ApiKeyService:
    """Validates API keys against configured keys and the key repository."""

    repository: ApiKeyRepository
    admin_api_key: str | None = None
    tester_api_key: str | None = None
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(tz=UTC))

    def validate(self, api_key: str | None) -> Principal | None:
        """Return the principal for a key, or None when access is denied."""
        if not api_key or not isinstance(api_key, str):
            return None
        if _matches(api_key, self.admin_api_key):
            return _principal("Admin Key", KeyClass.ADMIN)
        if _matches(api_key, self.tester_api_key):
            return _principal("Tester Key", KeyClass.TESTER)

        key_hash = hash_api_key(api_key)
        try:
            record = self.repository.get_by_hash(key_hash)
        except Exception:
            _logger.exception("API key lookup failed")
            return None
        if record is None or not record.enabled:
            return None
        now = self.clock()
        if record.expires_at is not None and record.expires_at <= now:
            return None
        try:
            self.repository.touch_last_used(key_hash, now)
        except Exception:
            _logger.warning("Failed to update last_used_at for key %s", record.name)
        return _principal(record.name, record.key_class)


def _matches(candidate: str, configured: str | None) -> bool:
    if not configured:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), configured.encode("utf-8"))


def _principal(name: str, key_class: KeyClass) -> Principal:
    return Principal(name=name, key_class=key_class, rate_limit=RATE_LIMITS[key_class])
