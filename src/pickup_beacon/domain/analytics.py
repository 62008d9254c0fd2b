"""Domain models for usage analytics."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum


class SessionEventType(StrEnum):
    """Kinds of session usage events."""

    CREATED = "session_created"
    JOINED = "session_joined"
    COMPLETED = "session_completed"


@dataclass(frozen=True)
class SessionEvent:
    """A single usage event for a session."""

    event_type: SessionEventType
    code: str
    occurred_at: datetime
    metadata: dict[str, object] = field(default_factory=dict)

    def to_payload(self) -> dict[str, object]:
        return {
            "type": self.event_type.value,
            "code": self.code,
            "occurredAt": self.occurred_at.isoformat(),
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class EventCounts:
    """Number of created, joined and completed sessions."""

    sessions: int = 0
    joins: int = 0
    completions: int = 0

    def to_payload(self) -> dict[str, int]:
        return {
            "sessions": self.sessions,
            "joins": self.joins,
            "completions": self.completions,
        }


@dataclass(frozen=True)
class DailyCounts:
    day: date
    counts: EventCounts

    def to_payload(self) -> dict[str, object]:
        return {"date": self.day.isoformat(), **self.counts.to_payload()}


@dataclass(frozen=True)
class UsageStats:
    """All-time, today and per-day counts, newest day first."""

    total: EventCounts
    today: EventCounts
    last_7_days: tuple[DailyCounts, ...]

    def to_payload(self) -> dict[str, object]:
        return {
            "total": self.total.to_payload(),
            "today": self.today.to_payload(),
            "last7Days": [day.to_payload() for day in self.last_7_days],
        }


@dataclass(frozen=True)
class AnomalyReport:
    """Result of checking usage for signs of unauthorized sharing."""

    suspicious_activity: bool
    reason: str | None = None
    details: dict[str, object] = field(default_factory=dict)

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"suspiciousActivity": self.suspicious_activity}
        if self.suspicious_activity:
            payload["reason"] = self.reason
            payload["details"] = self.details
        return payload
