"""Checkpoint state, safe-point aggregation and the persistent store."""

from .models import SAVE_MARGIN, CheckpointSnapshot, Position, decode_checkpoint, encode_checkpoint
from .safepoint import MetaCheckpoint, SafePoint, SafePointSource
from .store import CheckPoint, FlashCheckpoint, open_checkpoint

__all__ = [
    "SAVE_MARGIN",
    "CheckpointSnapshot",
    "Position",
    "decode_checkpoint",
    "encode_checkpoint",
    "MetaCheckpoint",
    "SafePoint",
    "SafePointSource",
    "CheckPoint",
    "FlashCheckpoint",
    "open_checkpoint",
]
