"""Health and metrics HTTP endpoint.

Exposes:
    create_app -- FastAPI application factory.
"""

from podnotifier.api.app import create_app

__all__ = ["create_app"]
