"""Checkpoint store persisting the drainer's safe resume point."""

from __future__ import annotations

import logging
import time
from typing import Callable, Mapping, Optional, Protocol, Tuple, runtime_checkable

from sqlalchemy import Engine

from ..config import Settings, get_settings
from ..db.models import checkpoint_table
from ..db.session import create_engine_from_settings, ensure_schema, fetch_checkpoint_rows, upsert_checkpoint
from ..errors import CheckpointDecodeError, CheckpointError
from ..monitoring.metrics import (
    CHECKPOINT_COMMIT_TS,
    CHECKPOINT_SAVE_FAILURES_TOTAL,
    CHECKPOINT_SAVE_LATENCY,
    CHECKPOINT_SAVE_SKIPPED_TOTAL,
    CHECKPOINT_SAVES_TOTAL,
)
from .models import (
    CheckpointSnapshot,
    CheckpointState,
    Position,
    Positions,
    apply_margin,
    decode_checkpoint,
    encode_checkpoint,
)
from .rwlock import RWLock
from .safepoint import MetaCheckpoint, SafePointSource

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@runtime_checkable
class CheckPoint(Protocol):
    """Checkpoint capability consumed by the drainer's sync loop."""

    safe_points: SafePointSource

    def load(self) -> None:
        ...

    def save(self, ts: int, positions: Mapping[str, Position]) -> None:
        ...

    def check(self, ts: int, positions: Mapping[str, Position]) -> bool:
        ...

    def pos(self) -> Tuple[int, Positions]:
        ...


class FlashCheckpoint:
    """Checkpoint store backed by a single row per cluster id.

    ``load`` and ``save`` hold the lock exclusively, including the backend
    round trip. ``check`` and ``pos`` only take it shared and never touch the
    backend.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        engine: Optional[Engine] = None,
        safe_points: Optional[SafePointSource] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.settings = settings
        self.cluster_id = settings.cluster_id
        self.initial_commit_ts = settings.initial_commit_ts
        self.save_interval = settings.save_interval_seconds
        self.safe_points: SafePointSource = safe_points if safe_points is not None else MetaCheckpoint()

        self._clock = clock
        self._lock = RWLock()
        self._state = CheckpointState()
        self._save_time: Optional[float] = None
        self._table = checkpoint_table(settings.schema_name, settings.table_name)

        owns_engine = engine is None
        self._engine = engine if engine is not None else create_engine_from_settings(settings)
        try:
            ensure_schema(self._engine, self._table)
            self.load()
        except Exception:
            if owns_engine:
                self._engine.dispose()
            raise

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def save_time(self) -> Optional[float]:
        return self._save_time

    def load(self) -> None:
        """Replace the in-memory checkpoint with the stored one."""

        with self._lock.write_locked():
            rows = fetch_checkpoint_rows(self._engine, self._table, self.cluster_id)
            if len(rows) > 1:
                logger.warning(
                    "Found %s checkpoint rows for cluster %s, using the last one", len(rows), self.cluster_id
                )
            blob = rows[-1] if rows else ""

            if not blob:
                self._state = CheckpointState(commit_ts=self.initial_commit_ts)
                logger.info("No stored checkpoint for cluster %s, starting at %s", self.cluster_id, self.initial_commit_ts)
                return

            try:
                snapshot = decode_checkpoint(blob)
            except CheckpointDecodeError:
                logger.error("Stored checkpoint for cluster %s is corrupt", self.cluster_id)
                raise

            commit_ts = snapshot.commit_ts if snapshot.commit_ts != 0 else self.initial_commit_ts
            self._state = CheckpointState(commit_ts=commit_ts, positions=dict(snapshot.positions))
            logger.info("Loaded checkpoint for cluster %s at commitTS %s", self.cluster_id, commit_ts)

    def save(self, ts: int, positions: Mapping[str, Position]) -> None:
        """Persist the current safe point, or ``ts``/``positions`` on a forced save."""

        with self._lock.write_locked():
            # Counted even when the write fails so a broken backend is not hammered.
            self._save_time = self._clock()

            safe = self.safe_points.pop_safe()
            if safe.force_save:
                safe_ts, safe_positions = ts, positions
            elif not safe.ok:
                CHECKPOINT_SAVE_SKIPPED_TOTAL.inc()
                logger.debug("No safe checkpoint yet, skipping save")
                return
            else:
                safe_ts, safe_positions = safe.commit_ts, safe.positions

            snapshot = CheckpointSnapshot(commit_ts=safe_ts, positions=apply_margin(safe_positions))
            try:
                blob = encode_checkpoint(snapshot)
                with CHECKPOINT_SAVE_LATENCY.time():
                    upsert_checkpoint(self._engine, self._table, self.cluster_id, blob)
            except CheckpointError:
                CHECKPOINT_SAVE_FAILURES_TOTAL.inc()
                logger.error("Save checkpoint at commitTS %s failed", safe_ts)
                raise

            self._state = CheckpointState(commit_ts=snapshot.commit_ts, positions=dict(snapshot.positions))
            CHECKPOINT_SAVES_TOTAL.inc()
            CHECKPOINT_COMMIT_TS.set(snapshot.commit_ts)
            logger.debug("Saved checkpoint commitTS %s (forced=%s)", snapshot.commit_ts, safe.force_save)

    def check(self, ts: int, positions: Mapping[str, Position]) -> bool:
        """Report a pending candidate and tell whether a save is due."""

        with self._lock.read_locked():
            self.safe_points.push_pending(ts, positions)
            if self._save_time is None:
                return True
            return self._clock() - self._save_time >= self.save_interval

    def pos(self) -> Tuple[int, Positions]:
        with self._lock.read_locked():
            return self._state.commit_ts, dict(self._state.positions)

    def __str__(self) -> str:
        ts, positions = self.pos()
        return f"binlog commitTS = {ts} and positions = {positions}"


def open_checkpoint(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[Engine] = None,
    safe_points: Optional[SafePointSource] = None,
    clock: Clock = time.monotonic,
) -> FlashCheckpoint:
    """Build a loaded checkpoint store from settings."""

    return FlashCheckpoint(settings or get_settings(), engine=engine, safe_points=safe_points, clock=clock)


__all__ = ["CheckPoint", "FlashCheckpoint", "open_checkpoint"]
