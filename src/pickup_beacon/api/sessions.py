"""Session HTTP endpoints."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from pickup_beacon.api.dependencies import get_container, require_api_key
from pickup_beacon.api.models import CreateSessionRequest, EndSessionRequest
from pickup_beacon.domain.auth import KeyClass
from pickup_beacon.domain.sessions import Role, SessionStatus
from pickup_beacon.services.codes import is_valid_code

if TYPE_CHECKING:
    from pickup_beacon.containers import AppContainer

router = APIRouter(prefix="/v1/sessions", tags=["sessions"])

_logger = logging.getLogger(__name__)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_api_key(KeyClass.ADMIN))],
)
async def create_session(
    payload: CreateSessionRequest, request: Request
) -> dict[str, object]:
    """Start a session for a driver and return its share details."""
    container: AppContainer = get_container(request)
    session = await container.session_service.create_session(payload.driver_name)
    frontend_url = container.settings.frontend_url.rstrip("/")
    return {
        "code": session.code,
        "shareUrl": f"{frontend_url}/{session.code}",
        "visual": session.visual.to_payload(),
    }


@router.get("/{code}", response_model=None)
async def get_session(code: str, request: Request) -> dict[str, object] | JSONResponse:
    """Return public details for a session code."""
    if not is_valid_code(code):
        return _invalid_code()
    container: AppContainer = get_container(request)
    session = await container.session_service.get_session(code)
    if session is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"exists": False, "error": "Session not found"},
        )
    return {
        "exists": True,
        "driverName": session.driver_name,
        "visual": session.visual.to_payload(),
        "status": session.status.value,
    }


@router.post("/{code}/join", response_model=None)
async def join_session(code: str, request: Request) -> dict[str, object] | JSONResponse:
    """Let a passenger join a live session."""
    if not is_valid_code(code):
        return _invalid_code()
    container: AppContainer = get_container(request)
    session = await container.session_service.get_session(code)
    if session is None:
        return _not_found()
    if session.status in {SessionStatus.EXPIRED, SessionStatus.MET}:
        return JSONResponse(
            status_code=status.HTTP_410_GONE,
            content={"success": False, "error": "Session has ended"},
        )
    return {"success": True, "session": session.to_payload()}


@router.post("/{code}/end", response_model=None)
async def end_session(
    code: str, request: Request, payload: EndSessionRequest | None = None
) -> dict[str, object] | JSONResponse:
    """Mark a session as met and notify connected clients."""
    if not is_valid_code(code):
        return _invalid_code()
    role = payload.role if payload else None
    if role not in {Role.DRIVER.value, Role.PASSENGER.value}:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid role"},
        )
    container: AppContainer = get_container(request)
    session = await container.session_service.mark_as_met(code)
    if session is None:
        return _not_found()
    _logger.info("Session %s ended by %s", code, role)
    await container.gateway.end_session(code, reason="met")
    return {"success": True}


def _invalid_code() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid session code format"},
    )


def _not_found() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"success": False, "error": "Session not found"},
    )
