"""Supabase repository for session usage events."""

from dataclasses import dataclass
from datetime import datetime

from supabase import Client

from pickup_beacon.domain.analytics import SessionEvent, SessionEventType
from pickup_beacon.services.analytics import SessionEventRepository


@dataclass
class SupabaseSessionEventRepository(SessionEventRepository):
    """Supabase-backed analytics event storage."""

    client: Client

    def create_event(self, event: SessionEvent) -> None:
        """Insert a usage event row."""
        self.client.table("session_events").insert(
            {
                "event_type": event.event_type.value,
                "code": event.code,
                "occurred_at": event.occurred_at.isoformat(),
                "metadata_json": event.metadata,
            }
        ).execute()

    def list_events_since(self, since: datetime, limit: int) -> list[SessionEvent]:
        """Return events in the window ordered newest first."""
        response = (
            self.client.table("session_events")
            .select("event_type, code, occurred_at, metadata_json")
            .gte("occurred_at", since.isoformat())
            .order("occurred_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]

    def count_events(
        self,
        event_type: SessionEventType,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> int:
        """Count events of a type using an exact row count."""
        query = (
            self.client.table("session_events")
            .select("code", count="exact")
            .eq("event_type", event_type.value)
        )
        if start is not None:
            query = query.gte("occurred_at", start.isoformat())
        if end is not None:
            query = query.lt("occurred_at", end.isoformat())
        response = query.execute()
        return response.count or 0


def _parse_row(row: dict[str, object]) -> SessionEvent:
    return SessionEvent(
        event_type=SessionEventType(row["event_type"]),
        code=row["code"],
        occurred_at=datetime.fromisoformat(row["occurred_at"]),
        metadata=row.get("metadata_json") or {},
    )
