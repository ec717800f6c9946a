"""Database package."""

from .models import checkpoint_table
from .session import (
    build_url,
    create_engine_from_settings,
    ensure_schema,
    fetch_checkpoint_rows,
    parse_backend_addr,
    upsert_checkpoint,
)

__all__ = [
    "checkpoint_table",
    "build_url",
    "create_engine_from_settings",
    "ensure_schema",
    "fetch_checkpoint_rows",
    "parse_backend_addr",
    "upsert_checkpoint",
]
