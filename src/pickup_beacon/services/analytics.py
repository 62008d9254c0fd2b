"""Usage analytics for sessions."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Protocol

from pickup_beacon.domain.analytics import (
    AnomalyReport,
    DailyCounts,
    EventCounts,
    SessionEvent,
    SessionEventType,
    UsageStats,
)

RECENT_EVENTS_WINDOW = timedelta(hours=24)
STATS_DAYS = 7
SPIKE_MULTIPLIER = 5
HOURLY_SESSION_THRESHOLD = 10
ANOMALY_SAMPLE_SIZE = 50

_logger = logging.getLogger(__name__)


class SessionEventRepository(Protocol):
    """Persistence interface for session usage events."""

    def create_event(self, event: SessionEvent) -> None:
        """Persist a usage event."""

    def list_events_since(self, since: datetime, limit: int) -> list[SessionEvent]:
        """Return up to ``limit`` events at or after ``since``, newest first."""

    def count_events(
        self,
        event_type: SessionEventType,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> int:
        """Count events of a type in ``[start, end)``; open bounds are unbounded."""


@dataclass
class AnalyticsService:
    """Records session usage events without affecting the session flow."""

    repository: SessionEventRepository
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(tz=UTC))

    def session_created(self, code: str, driver_name: str) -> None:
        self._record(SessionEventType.CREATED, code, {"driver_name": driver_name})

    def session_joined(self, code: str) -> None:
        self._record(SessionEventType.JOINED, code)

    def session_completed(self, code: str) -> None:
        self._record(SessionEventType.COMPLETED, code)

    def recent_events(self, limit: int = 100) -> list[SessionEvent]:
        """Return usage events from the last 24 hours, newest first."""
        since = self.clock() - RECENT_EVENTS_WINDOW
        return self.repository.list_events_since(since, limit)

    def stats(self) -> UsageStats:
        """Return all-time totals, today's counts and the last seven days."""
        today = self.clock().astimezone(UTC).date()
        days = tuple(
            DailyCounts(day=day, counts=self._counts_for_day(day))
            for day in (today - timedelta(days=offset) for offset in range(STATS_DAYS))
        )
        return UsageStats(total=self._counts(), today=days[0].counts, last_7_days=days)

    def detect_anomalies(self, stats: UsageStats | None = None) -> AnomalyReport:
        """Flag sudden spikes or bursts of session creation."""
        stats = stats or self.stats()
        previous = [day.counts.sessions for day in stats.last_7_days[1:]]
        average = sum(previous) / len(previous) if previous else 0.0
        today_sessions = stats.today.sessions
        if average > 0 and today_sessions > average * SPIKE_MULTIPLIER:
            return AnomalyReport(
                suspicious_activity=True,
                reason="Unusual spike in session creation",
                details={
                    "todaySessions": today_sessions,
                    "averageLast7Days": round(average),
                    "increaseMultiple": round(today_sessions / average),
                },
            )

        hour_ago = self.clock() - timedelta(hours=1)
        last_hour = sum(
            1
            for event in self.recent_events(ANOMALY_SAMPLE_SIZE)
            if event.event_type is SessionEventType.CREATED
            and event.occurred_at > hour_ago
        )
        if last_hour > HOURLY_SESSION_THRESHOLD:
            return AnomalyReport(
                suspicious_activity=True,
                reason="High session creation rate",
                details={
                    "sessionsLastHour": last_hour,
                    "threshold": HOURLY_SESSION_THRESHOLD,
                },
            )
        return AnomalyReport(suspicious_activity=False)

    def _counts_for_day(self, day: date) -> EventCounts:
        start = datetime.combine(day, time.min, tzinfo=UTC)
        return self._counts(start, start + timedelta(days=1))

    def _counts(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> EventCounts:
        return EventCounts(
            sessions=self.repository.count_events(SessionEventType.CREATED, start, end),
            joins=self.repository.count_events(SessionEventType.JOINED, start, end),
            completions=self.repository.count_events(
                SessionEventType.COMPLETED, start, end
            ),
        )

    def _record(
        self,
        event_type: SessionEventType,
        code: str,
        metadata: dict[str, object] | None = None,
    ) -> None:
        event = SessionEvent(
            event_type=event_type,
            code=code,
            occurred_at=self.clock(),
            metadata=metadata or {},
        )
        try:
            self.repository.create_event(event)
        except Exception:
            _logger.exception(
                "Failed to record analytics event",
                extra={"event_type": event_type.value, "code": code},
            )
