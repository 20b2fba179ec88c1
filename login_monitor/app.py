from __future__ import annotations

from typing import Sequence

import structlog
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse, Response

from .config import Target
from .metrics import MetricsRegistry
from .scheduler import Scheduler


logger = structlog.get_logger(__name__)


def create_app(
    metrics: MetricsRegistry,
    scheduler: Scheduler | None = None,
    targets: Sequence[Target] = (),
) -> FastAPI:
    """HTTP surface: Prometheus scrape endpoint and liveness probe.

    When a scheduler is given it is started with ``targets`` once the app is
    serving and stopped on shutdown.
    """
    app = FastAPI(title="Synthetic Login Monitor", version="0.1.0")
    app.state.metrics = metrics
    app.state.scheduler = scheduler

    @app.on_event("startup")
    async def _startup() -> None:
        if scheduler is not None:
            await scheduler.start(targets)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        if scheduler is not None:
            await scheduler.stop(wait=False)

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        logger.debug("Metrics endpoint called")
        try:
            body = metrics.snapshot()
        except Exception as exc:
            logger.error("Failed to generate metrics", error=str(exc))
            return PlainTextResponse(str(exc), status_code=500)
        logger.debug("Metrics generated successfully", metrics_length=len(body))
        return Response(content=body, media_type=metrics.content_type)

    @app.get("/health")
    async def health() -> PlainTextResponse:
        logger.debug("Health check endpoint called")
        return PlainTextResponse("OK")

    return app
