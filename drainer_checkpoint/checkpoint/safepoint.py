"""Safe-point aggregation shared between the syncer and the checkpoint store."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from .models import Position, Positions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SafePoint:
    """Result of :meth:`SafePointSource.pop_safe`."""

    force_save: bool = False
    ok: bool = False
    commit_ts: int = 0
    positions: Positions = field(default_factory=dict)


@runtime_checkable
class SafePointSource(Protocol):
    """Thread-safe aggregator handed to the checkpoint store at construction."""

    def push_pending(self, ts: int, positions: Mapping[str, Position]) -> None:
        ...

    def pop_safe(self) -> SafePoint:
        ...

    def force_save(self) -> None:
        ...


class MetaCheckpoint:
    """In-process safe-point aggregator.

    Producers report candidates with :meth:`push_pending`. Once the downstream
    apply path reports that everything up to some commit timestamp is durable
    (:meth:`mark_flushed`), the newest pending candidate at or below that
    timestamp becomes the safe point. :meth:`force_save` asks the next
    :meth:`pop_safe` caller to persist its own values instead.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: List[Tuple[int, Positions]] = []
        self._safe: Optional[Tuple[int, Positions]] = None
        self._force_save = False
        self._promoted_ts: Optional[int] = None

    def push_pending(self, ts: int, positions: Mapping[str, Position]) -> None:
        with self._lock:
            if self._pending and ts <= self._pending[-1][0]:
                return
            # A safe point never moves backwards once promoted.
            if self._promoted_ts is not None and ts <= self._promoted_ts:
                return
            self._pending.append((ts, dict(positions)))

    def mark_flushed(self, ts: int) -> bool:
        """Promote the newest pending candidate with commit ts <= ``ts``."""

        with self._lock:
            promoted = None
            keep_from = 0
            for index, candidate in enumerate(self._pending):
                if candidate[0] > ts:
                    break
                promoted = candidate
                keep_from = index + 1
            if promoted is None:
                return False
            del self._pending[:keep_from]
            self._safe = promoted
            self._promoted_ts = promoted[0]
            logger.debug("Safe point advanced to commitTS %s", promoted[0])
            return True

    def force_save(self) -> None:
        with self._lock:
            self._force_save = True

    def pop_safe(self) -> SafePoint:
        with self._lock:
            force_save, self._force_save = self._force_save, False
            safe, self._safe = self._safe, None
        if safe is None:
            return SafePoint(force_save=force_save, ok=False)
        return SafePoint(force_save=force_save, ok=True, commit_ts=safe[0], positions=safe[1])

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)


__all__ = ["SafePoint", "SafePointSource", "MetaCheckpoint"]
