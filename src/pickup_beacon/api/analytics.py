"""Usage analytics endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Query, Request

from pickup_beacon.api.dependencies import get_container, require_api_key
from pickup_beacon.domain.auth import KeyClass
from pickup_beacon.services.analytics import ANOMALY_SAMPLE_SIZE

if TYPE_CHECKING:
    from pickup_beacon.containers import AppContainer

router = APIRouter(
    prefix="/v1/analytics",
    tags=["analytics"],
    dependencies=[Depends(require_api_key(KeyClass.ADMIN))],
)


@router.get("/stats")
async def usage_stats(request: Request) -> dict[str, object]:
    """Return totals, today's counts and a seven day breakdown."""
    container: AppContainer = get_container(request)
    return container.analytics_service.stats().to_payload()


@router.get("/events")
async def recent_events(
    request: Request, limit: int = Query(default=100, ge=1, le=500)
) -> dict[str, object]:
    """Return session usage events from the last 24 hours."""
    container: AppContainer = get_container(request)
    events = container.analytics_service.recent_events(limit)
    return {
        "events": [event.to_payload() for event in events],
        "count": len(events),
    }


@router.get("/anomalies")
async def anomalies(request: Request) -> dict[str, object]:
    """Report unusual session creation patterns."""
    container: AppContainer = get_container(request)
    return container.analytics_service.detect_anomalies().to_payload()


@router.get("/dashboard")
async def dashboard(request: Request) -> dict[str, object]:
    """Return stats, recent events and anomalies in one response."""
    container: AppContainer = get_container(request)
    analytics = container.analytics_service
    stats = analytics.stats()
    events = analytics.recent_events(ANOMALY_SAMPLE_SIZE)
    return {
        "stats": stats.to_payload(),
        "recentEvents": [event.to_payload() for event in events],
        "anomalies": analytics.detect_anomalies(stats).to_payload(),
        "timestamp": analytics.clock().isoformat(),
    }
