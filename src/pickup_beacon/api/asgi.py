"""ASGI entrypoint for the pickup beacon API."""

from pickup_beacon.api.app import create_app
from pickup_beacon.containers import build_container

app = create_app(build_container())
