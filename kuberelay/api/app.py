"""FastAPI application factory for the kuberelay health and metrics API.

Usage::

    from kuberelay.api.app import create_app

    app = create_app(pipeline=pipeline, config=config)

The factory is used by both the production bootstrap (``kuberelay.app``)
and unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

_log = structlog.get_logger(component="api.app")


def create_app(pipeline: Any = None, config: Any = None) -> FastAPI:
    """Create the health/metrics FastAPI application.

    Args:
        pipeline: EventPipeline whose ``running`` flag drives /readyz.
        config:   KubeRelayConfig, reported by /readyz.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kuberelay import __version__

    app = FastAPI(
        title="kuberelay",
        summary="Kubernetes event forwarder health API",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )
    app.state.pipeline = pipeline
    app.state.config = config

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.get("/readyz")
    async def readyz(request: Request) -> JSONResponse:
        pipe = request.app.state.pipeline
        namespace = ""
        if request.app.state.config is not None:
            namespace = request.app.state.config.watch.namespace
        ready = pipe is not None and bool(pipe.running)
        return JSONResponse(
            status_code=200 if ready else 503,
            content={"status": "ready" if ready else "not_ready", "namespace": namespace or "*"},
        )

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error("unhandled_exception", path=str(request.url.path), method=request.method, error=str(exc))
        return JSONResponse(status_code=500, content={"error": "INTERNAL_ERROR"})

    return app
