"""Prometheus metrics for checkpoint persistence."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

CHECKPOINT_SAVES_TOTAL = Counter("drainer_checkpoint_saves_total", "Checkpoints written to the backend")
CHECKPOINT_SAVE_SKIPPED_TOTAL = Counter(
    "drainer_checkpoint_save_skipped_total", "Save calls that found no safe point to persist"
)
CHECKPOINT_SAVE_FAILURES_TOTAL = Counter("drainer_checkpoint_save_failures_total", "Save calls that raised")
CHECKPOINT_SAVE_LATENCY = Histogram("drainer_checkpoint_save_latency_seconds", "Latency of checkpoint writes")
CHECKPOINT_COMMIT_TS = Gauge("drainer_checkpoint_commit_ts", "Commit timestamp of the last persisted checkpoint")

metrics_router = APIRouter()


@metrics_router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "CHECKPOINT_SAVES_TOTAL",
    "CHECKPOINT_SAVE_SKIPPED_TOTAL",
    "CHECKPOINT_SAVE_FAILURES_TOTAL",
    "CHECKPOINT_SAVE_LATENCY",
    "CHECKPOINT_COMMIT_TS",
    "metrics_router",
]
