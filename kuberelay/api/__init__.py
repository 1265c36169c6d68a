"""Health and metrics API for kuberelay.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by kuberelay.app bootstrap).
"""

from kuberelay.api.app import create_app

build_app = create_app

__all__ = ["build_app", "create_app"]
