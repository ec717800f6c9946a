"""Worker utilities for driving checkpoint saves."""

from .runner import CheckpointRunner

__all__ = ["CheckpointRunner"]
