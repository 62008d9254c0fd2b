"""Supabase repository for issued API keys."""

from dataclasses import dataclass
from datetime import datetime

from supabase import Client

from pickup_beacon.domain.auth import ApiKeyRecord, KeyClass
from pickup_beacon.services.auth import ApiKeyRepository


@dataclass
class SupabaseApiKeyRepository(ApiKeyRepository):
    """Supabase-backed API key lookups."""

    client: Client

    def get_by_hash(self, key_hash: str) -> ApiKeyRecord | None:
        """Return the key row for a hash, if present."""
        response = (
            self.client.table("api_keys")
            .select("key_hash, name, key_class, enabled, expires_at, last_used_at")
            .eq("key_hash", key_hash)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return ApiKeyRecord(
            key_hash=row["key_hash"],
            name=row.get("name") or "API Key",
            key_class=KeyClass(row["key_class"]),
            enabled=bool(row.get("enabled", True)),
            expires_at=_parse_timestamp(row.get("expires_at")),
            last_used_at=_parse_timestamp(row.get("last_used_at")),
        )

    def touch_last_used(self, key_hash: str, used_at: datetime) -> None:
        """Update the last used timestamp for a key."""
        self.client.table("api_keys").update(
            {"last_used_at": used_at.isoformat()}
        ).eq("key_hash", key_hash).execute()


def _parse_timestamp(value: object) -> datetime | None:
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None
