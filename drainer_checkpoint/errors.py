"""Exception types raised by the checkpoint layer."""

from __future__ import annotations


class CheckpointError(Exception):
    """Base class for all checkpoint failures."""


class ConfigurationError(CheckpointError):
    """Settings are malformed; raised before any state is created."""


class BackendError(CheckpointError):
    """The persistence backend could not be reached or rejected a statement."""


class CheckpointDecodeError(CheckpointError):
    """A stored checkpoint blob does not match the expected format."""


class CheckpointEncodeError(CheckpointError):
    """The in-memory checkpoint could not be serialized."""


__all__ = [
    "CheckpointError",
    "ConfigurationError",
    "BackendError",
    "CheckpointDecodeError",
    "CheckpointEncodeError",
]
