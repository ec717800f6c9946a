"""Diagnostics service exposing the loaded checkpoint over HTTP."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .api.routes import router as api_router
from .checkpoint.store import FlashCheckpoint, open_checkpoint
from .config import Settings, get_settings
from .monitoring.metrics import metrics_router

logger = logging.getLogger(__name__)


def create_app(checkpoint: Optional[FlashCheckpoint] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the app. Without ``checkpoint`` one is opened from settings on startup."""

    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.checkpoint is None:
            app.state.checkpoint = open_checkpoint(settings)
        logger.info("Serving checkpoint for cluster %s: %s", settings.cluster_id, app.state.checkpoint)
        yield

    app = FastAPI(title="Drainer Checkpoint", version="0.1.0", lifespan=lifespan)
    app.state.checkpoint = checkpoint
    app.include_router(api_router, prefix="/api")

    if settings.enable_metrics:
        app.include_router(metrics_router)

    return app


__all__ = ["create_app"]
