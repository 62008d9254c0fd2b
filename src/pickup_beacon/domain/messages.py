"""Models for realtime channel messages."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from pickup_beacon.domain.sessions import Role


class LocationMessage(BaseModel):
    """A participant's position report."""

    model_config = ConfigDict(strict=True)

    type: Literal["location"]
    latitude: float = Field(ge=-90.0, le=90.0, allow_inf_nan=False)
    longitude: float = Field(ge=-180.0, le=180.0, allow_inf_nan=False)
    accuracy: float | None = Field(default=None, ge=0.0, allow_inf_nan=False)


class MetMessage(BaseModel):
    """Either participant confirming the pickup happened."""

    type: Literal["met"]


def connection_message(role: Role, connected: bool) -> dict[str, object]:
    return {"type": "connection", "role": role.value, "connected": connected}


def ended_message(reason: str) -> dict[str, object]:
    return {"type": "ended", "reason": reason}


def error_message(message: str) -> dict[str, object]:
    return {"type": "error", "message": message}
