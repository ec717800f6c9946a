"""Checkpoint persistence for the binlog drainer."""

__all__ = [
    "api",
    "config",
    "errors",
    "logging_utils",
    "checkpoint",
    "db",
    "monitoring",
    "worker",
]

__version__ = "0.1.0"
