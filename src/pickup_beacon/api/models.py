"""Pydantic models for the HTTP API."""

from pydantic import BaseModel, ConfigDict, Field


class CreateSessionRequest(BaseModel):
    """Body for starting a session."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    driver_name: str = Field(alias="driverName", min_length=1, max_length=80)


class EndSessionRequest(BaseModel):
    """Body for ending a session."""

    role: str | None = None
