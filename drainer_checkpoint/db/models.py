"""SQLAlchemy table definition for stored checkpoints."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Column, MetaData, Table, Text
from sqlalchemy.dialects import mysql
from sqlalchemy.types import TypeDecorator

UINT64_MAX = 2**64 - 1

# Dialects whose column can hold the full unsigned 64-bit range as is.
_NATIVE_UINT64 = ("clickhouse", "mysql")


class UInt64(TypeDecorator):
    """Unsigned 64-bit integer.

    Backends without an unsigned 64-bit type store the two's complement bit
    pattern in a signed BIGINT, so ids at or above 2**63 read back unchanged.
    """

    impl = BigInteger
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "mysql":
            return dialect.type_descriptor(mysql.BIGINT(unsigned=True))
        return dialect.type_descriptor(BigInteger())

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name in _NATIVE_UINT64:
            return value
        if not 0 <= value <= UINT64_MAX:
            raise ValueError(f"{value} is outside the unsigned 64-bit range")
        return value - 2**64 if value >= 2**63 else value

    def process_result_value(self, value, dialect):
        if value is None or dialect.name in _NATIVE_UINT64:
            return value
        return value + 2**64 if value < 0 else value


def checkpoint_table(schema: Optional[str], table: str, metadata: Optional[MetaData] = None) -> Table:
    """One row per cluster id, holding the JSON checkpoint blob.

    ``version`` is the write time in nanoseconds; reads order by it so the
    newest blob comes last on backends that keep several versions.
    """

    return Table(
        table,
        metadata if metadata is not None else MetaData(),
        Column("clusterid", UInt64, primary_key=True, autoincrement=False),
        Column("checkpoint", Text, nullable=False),
        Column("version", BigInteger, nullable=False, default=0),
        schema=schema,
    )


__all__ = ["UINT64_MAX", "UInt64", "checkpoint_table"]
