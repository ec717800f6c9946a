"""Drives periodic checkpoint saves from the sync loop."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from ..checkpoint.models import Position
from ..checkpoint.safepoint import SafePointSource
from ..checkpoint.store import CheckPoint
from ..errors import CheckpointError

logger = logging.getLogger(__name__)


class CheckpointRunner:
    """Calls ``check`` for every applied batch and ``save`` once the interval elapsed.

    A failed periodic save is logged and retried on a later batch; the store's
    throttle window already advanced, so retries are naturally spaced out.
    """

    def __init__(self, checkpoint: CheckPoint, safe_points: Optional[SafePointSource] = None) -> None:
        self.checkpoint = checkpoint
        self.safe_points = safe_points if safe_points is not None else checkpoint.safe_points
        self.failures = 0

    def observe(self, ts: int, positions: Mapping[str, Position]) -> bool:
        """Report a candidate; return True when a save ran without error."""

        if not self.checkpoint.check(ts, positions):
            return False
        try:
            self.checkpoint.save(ts, positions)
        except CheckpointError:
            self.failures += 1
            logger.exception("Periodic checkpoint save failed", extra={"commit_ts": ts})
            return False
        return True

    def close(self, ts: int, positions: Mapping[str, Position]) -> None:
        """Force a final save of ``ts``/``positions``; errors propagate."""

        self.safe_points.force_save()
        self.checkpoint.save(ts, positions)
        logger.info("Final checkpoint saved: %s", self.checkpoint)


__all__ = ["CheckpointRunner"]
