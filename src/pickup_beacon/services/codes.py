"""Session code generation and validation."""

import re
import secrets

CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
CODE_LENGTH = 6

_CODE_PATTERN = re.compile(rf"^[A-Z0-9]{{{CODE_LENGTH}}}$")


def generate_code() -> str:
    """Return a random 6-character uppercase alphanumeric code."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def is_valid_code(code: object) -> bool:
    """Return true when the value is a well-formed session code."""
    return isinstance(code, str) and _CODE_PATTERN.fullmatch(code) is not None
