"""Error types shared by services and the API layer."""


class ValidationError(ValueError):
    """Raised when a code, role or payload is malformed."""


class AuthError(Exception):
    """Raised when a request carries a missing, invalid or insufficient key."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    @property
    def label(self) -> str:
        return "Forbidden" if self.status_code == 403 else "Unauthorized"  # noqa: PLR2004


class TransientStoreError(Exception):
    """Raised when the session store cannot be reached."""


class ConnectionClosedError(Exception):
    """Raised when sending on a realtime connection that is already closed."""
