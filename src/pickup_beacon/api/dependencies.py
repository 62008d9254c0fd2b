"""Request dependencies shared by API routers."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from fastapi import Header, Request, status

from pickup_beacon.domain.auth import KeyClass, Principal
from pickup_beacon.errors import AuthError
from pickup_beacon.services.auth import parse_bearer

if TYPE_CHECKING:
    from pickup_beacon.containers import AppContainer


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def require_api_key(
    *allowed: KeyClass,
) -> Callable[..., Awaitable[Principal]]:
    """Build a dependency that requires a Bearer API key of an allowed class."""

    async def dependency(
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> Principal:
        if not authorization:
            raise AuthError(
                status.HTTP_401_UNAUTHORIZED, "Missing Authorization header"
            )
        token = parse_bearer(authorization)
        if token is None:
            raise AuthError(
                status.HTTP_401_UNAUTHORIZED,
                "Invalid Authorization header format. Expected: Bearer <api_key>",
            )
        container = get_container(request)
        principal = container.api_key_service.validate(token)
        if principal is None:
            raise AuthError(status.HTTP_401_UNAUTHORIZED, "Invalid or expired API key")
        if allowed and principal.key_class not in allowed:
            required = " or ".join(key_class.value for key_class in allowed)
            raise AuthError(
                status.HTTP_403_FORBIDDEN,
                f"This endpoint requires {required} access",
            )
        return principal

    return dependency
