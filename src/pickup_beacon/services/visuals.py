"""Beacon visuals derived deterministically from a session code.

The same code always yields the same color and vibration pattern so that the
driver and passenger screens can be matched at a glance. Colors are HSL with a
hue spread over the whole wheel and saturation/lightness kept in a band that
stays readable on a phone held up at night.
"""

from pickup_beacon.domain.sessions import Visual

# Vibration patterns as [on, off, on, ...] durations in milliseconds.
PATTERNS: tuple[tuple[int, ...], ...] = (
    (200, 100, 200),  # short-short
    (400, 100, 200),  # long-short
    (200, 100, 400),  # short-long
    (200, 100, 200, 100, 200),  # short-short-short
    (400, 100, 400),  # long-long
    (200, 100, 400, 100, 200),  # short-long-short
)


def code_hash(code: str) -> int:
    """Return a signed 32-bit string hash (h * 31 + c) of the code."""
    value = 0
    for char in code:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def color_from_code(code: str) -> str:
    """Return an HSL color string for the code."""
    value = abs(code_hash(code))
    hue = value % 360
    saturation = 70 + (value >> 8) % 20
    lightness = 50 + (value >> 16) % 10
    return f"hsl({hue}, {saturation}%, {lightness}%)"


def pattern_from_code(code: str) -> tuple[int, ...]:
    """Return the vibration pattern for the code."""
    return PATTERNS[abs(code_hash(code)) % len(PATTERNS)]


def visual_from_code(code: str) -> Visual:
    return Visual(color=color_from_code(code), pattern=pattern_from_code(code))
