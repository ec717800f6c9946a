"""Engine construction and checkpoint row access using SQLAlchemy."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional, Tuple, Union

from sqlalchemy import Engine, create_engine, delete, event, insert, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.schema import CreateSchema, Table
from sqlalchemy.sql.expression import Executable

from ..config import Settings
from ..errors import BackendError, ConfigurationError

logger = logging.getLogger(__name__)

HostPort = Tuple[str, int]


def parse_backend_addr(addr: str, default_port: int) -> List[HostPort]:
    """Split ``"h1:p1,h2:p2"`` into host/port pairs. Hosts without a port get ``default_port``."""

    result: List[HostPort] = []
    for item in addr.split(","):
        item = item.strip()
        if not item:
            continue
        host, sep, port = item.rpartition(":")
        if not sep:
            host, port = item, str(default_port)
        if not host:
            raise ConfigurationError(f"invalid backend address {item!r}: missing host")
        try:
            port_number = int(port)
        except ValueError as exc:
            raise ConfigurationError(f"invalid backend address {item!r}: bad port") from exc
        if not 0 < port_number < 65536:
            raise ConfigurationError(f"invalid backend address {item!r}: port out of range")
        result.append((host, port_number))
    if not result:
        raise ConfigurationError(f"invalid backend address {addr!r}")
    return result


def build_url(settings: Settings) -> URL:
    if settings.database_url:
        try:
            return make_url(settings.database_url)
        except ArgumentError as exc:
            raise ConfigurationError(f"invalid database_url {settings.database_url!r}") from exc

    host, port = parse_backend_addr(settings.host, settings.port)[0]
    return URL.create(
        drivername=settings.driver,
        username=settings.user or None,
        password=settings.password or None,
        host=host,
        port=port,
    )


def _is_memory_sqlite(url: URL) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def _attach_sqlite_schema(engine: Engine, url: URL, schema: str) -> None:
    if _is_memory_sqlite(url):
        target = ":memory:"
    else:
        target = str(Path(url.database).with_name(f"{schema}.db"))
    quoted = schema.replace('"', '""')

    @event.listens_for(engine, "connect")
    def _attach(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute(f'ATTACH DATABASE ? AS "{quoted}"', (target,))
        finally:
            cursor.close()


def create_engine_from_settings(settings: Settings) -> Engine:
    """Create the backend engine. SQLite gets the schema attached as a database."""

    url = build_url(settings)
    kwargs = {"future": True}
    if _is_memory_sqlite(url):
        kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
    try:
        engine = create_engine(url, **kwargs)
    except (ArgumentError, SQLAlchemyError) as exc:
        raise ConfigurationError(f"cannot create engine for {url.render_as_string(hide_password=True)}") from exc
    if url.get_backend_name() == "sqlite":
        _attach_sqlite_schema(engine, url, settings.schema_name)
    return engine


def ensure_schema(engine: Engine, table: Table) -> None:
    """Create the schema and checkpoint table when missing."""

    dialect = engine.dialect.name
    try:
        with engine.begin() as conn:
            if dialect == "clickhouse":
                conn.execute(text(f"CREATE DATABASE IF NOT EXISTS `{table.schema}`"))
                conn.execute(
                    text(
                        f"CREATE TABLE IF NOT EXISTS `{table.schema}`.`{table.name}`"
                        " (`clusterid` UInt64, `checkpoint` String, `version` UInt64)"
                        " ENGINE = ReplacingMergeTree(`version`) ORDER BY `clusterid`"
                    )
                )
                return
            if table.schema and dialect != "sqlite":
                conn.execute(CreateSchema(table.schema, if_not_exists=True))
            table.create(conn, checkfirst=True)
    except SQLAlchemyError as exc:
        logger.error("Create checkpoint table %s failed: %s", table.fullname, exc)
        raise BackendError(f"cannot create checkpoint table {table.fullname}") from exc


def checkpoint_select(table: Table, cluster_id: int, dialect_name: str) -> Executable:
    """Build the read for ``cluster_id``, oldest version first."""

    if dialect_name == "clickhouse":
        # Unmerged ReplacingMergeTree parts may still hold older versions.
        return text(
            f"SELECT `checkpoint` FROM `{table.schema}`.`{table.name}` FINAL"
            " WHERE `clusterid` = :clusterid ORDER BY `version`"
        ).bindparams(clusterid=cluster_id)
    return select(table.c.checkpoint).where(table.c.clusterid == cluster_id).order_by(table.c.version)


def fetch_checkpoint_rows(engine: Engine, table: Table, cluster_id: int) -> List[str]:
    """Return every stored blob for ``cluster_id``, newest last."""

    stmt = checkpoint_select(table, cluster_id, engine.dialect.name)
    try:
        with engine.connect() as conn:
            return [_as_text(row) for row in conn.execute(stmt).scalars()]
    except SQLAlchemyError as exc:
        logger.error("Select checkpoint for cluster %s failed: %s", cluster_id, exc)
        raise BackendError(f"cannot read checkpoint for cluster {cluster_id}") from exc


def upsert_checkpoint(
    engine: Engine, table: Table, cluster_id: int, blob: str, version: Optional[int] = None
) -> None:
    """Replace the stored blob for ``cluster_id``."""

    dialect = engine.dialect.name
    values = {"clusterid": cluster_id, "checkpoint": blob, "version": time.time_ns() if version is None else version}
    try:
        with engine.begin() as conn:
            if dialect in ("postgresql", "sqlite"):
                dialect_insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
                stmt = dialect_insert(table).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[table.c.clusterid],
                    set_={"checkpoint": stmt.excluded.checkpoint, "version": stmt.excluded.version},
                )
                conn.execute(stmt)
            elif dialect == "clickhouse":
                # ReplacingMergeTree keeps the newest version per key.
                conn.execute(insert(table).values(**values))
            else:
                conn.execute(delete(table).where(table.c.clusterid == cluster_id))
                conn.execute(insert(table).values(**values))
    except SQLAlchemyError as exc:
        logger.error("Write checkpoint for cluster %s failed: %s", cluster_id, exc)
        raise BackendError(f"cannot write checkpoint for cluster {cluster_id}") from exc


def _as_text(value: Optional[Union[str, bytes]]) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


__all__ = [
    "build_url",
    "checkpoint_select",
    "create_engine_from_settings",
    "ensure_schema",
    "fetch_checkpoint_rows",
    "parse_backend_addr",
    "upsert_checkpoint",
]
