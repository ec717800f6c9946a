"""Monitoring helpers."""

from .metrics import (
    CHECKPOINT_COMMIT_TS,
    CHECKPOINT_SAVE_FAILURES_TOTAL,
    CHECKPOINT_SAVE_LATENCY,
    CHECKPOINT_SAVE_SKIPPED_TOTAL,
    CHECKPOINT_SAVES_TOTAL,
    metrics_router,
)

__all__ = [
    "CHECKPOINT_COMMIT_TS",
    "CHECKPOINT_SAVE_FAILURES_TOTAL",
    "CHECKPOINT_SAVE_LATENCY",
    "CHECKPOINT_SAVE_SKIPPED_TOTAL",
    "CHECKPOINT_SAVES_TOTAL",
    "metrics_router",
]
