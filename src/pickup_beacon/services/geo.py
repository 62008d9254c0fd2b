"""Geographic helpers for distance between session participants."""

import math

from pickup_beacon.domain.sessions import SessionRecord

EARTH_RADIUS_METERS = 6371000.0


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points in meters.

    Uses the haversine formula. Non-finite or out-of-range coordinates raise
    ``ValueError``.
    """
    for latitude, longitude in ((lat1, lon1), (lat2, lon2)):
        validate_coordinates(latitude, longitude)
    phi1, lambda1, phi2, lambda2 = map(math.radians, (lat1, lon1, lat2, lon2))
    dphi = phi2 - phi1
    dlambda = lambda2 - lambda1
    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    c = 2 * math.asin(min(1.0, math.sqrt(a)))
    return EARTH_RADIUS_METERS * c


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Raise ValueError unless the pair is a finite, in-range position."""
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise ValueError("Coordinates must be finite numbers")
    if not -90.0 <= latitude <= 90.0:  # noqa: PLR2004
        raise ValueError(f"Latitude out of range: {latitude}")
    if not -180.0 <= longitude <= 180.0:  # noqa: PLR2004
        raise ValueError(f"Longitude out of range: {longitude}")


def session_distance(session: SessionRecord) -> float | None:
    """Return the driver/passenger distance, or None until both have reported."""
    driver = session.driver
    passenger = session.passenger
    if not (driver.has_location and passenger.has_location):
        return None
    return calculate_distance(
        driver.latitude, driver.longitude, passenger.latitude, passenger.longitude
    )
