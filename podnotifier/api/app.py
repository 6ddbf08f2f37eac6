"""FastAPI application factory for the health and metrics endpoint.

Usage::

    from podnotifier.api.app import create_app

    app = create_app(watcher=watcher, config=config)

Routes:
    GET /healthz -- 200 while the watch loop runs, 503 otherwise.
    GET /metrics -- Prometheus text exposition of the default registry.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

_log = structlog.get_logger(component="api.app")


def create_app(watcher: Any, config: Any = None) -> FastAPI:
    """Create the health/metrics application.

    Args:
        watcher: PodTerminationWatcher (or anything with ``running``,
                 ``stop_requested``, ``error`` and ``stats``).
        config:  PodNotifierConfig. Used for the watch scope in /healthz.
    """
    from podnotifier import __version__

    namespace = ""
    labels = ""
    if config is not None and hasattr(config, "watch"):
        namespace = config.watch.namespace
        labels = config.watch.label_selector

    app = FastAPI(title="k8s-pod-notifier", version=__version__, docs_url=None, redoc_url=None)

    @app.get("/healthz")
    async def healthz() -> JSONResponse:
        running = bool(watcher.running)
        error = watcher.error
        body = {
            "status": "ok" if running else "unavailable",
            "version": __version__,
            "namespace": namespace or "*",
            "labels": labels,
            "stop_requested": bool(watcher.stop_requested),
            "error": str(error) if error is not None else None,
            "stats": watcher.stats.as_dict(),
        }
        if not running:
            _log.debug("healthz_unavailable", error=body["error"])
        return JSONResponse(status_code=200 if running else 503, content=body)

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
