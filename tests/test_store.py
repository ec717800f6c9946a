import threading

import pytest
from sqlalchemy import BigInteger, Column, MetaData, Table, Text, insert

from drainer_checkpoint.checkpoint import store as store_module
from drainer_checkpoint.checkpoint.models import Position
from drainer_checkpoint.checkpoint.safepoint import MetaCheckpoint, SafePoint
from drainer_checkpoint.checkpoint.store import CheckPoint, FlashCheckpoint
from drainer_checkpoint.db.models import checkpoint_table
from drainer_checkpoint.db.session import fetch_checkpoint_rows, upsert_checkpoint
from drainer_checkpoint.errors import BackendError, CheckpointDecodeError


class StaticSource:
    """Safe-point source returning a fixed answer."""

    def __init__(self, result: SafePoint) -> None:
        self.result = result
        self.pushed = []

    def push_pending(self, ts, positions):
        self.pushed.append((ts, dict(positions)))

    def pop_safe(self) -> SafePoint:
        return self.result

    def force_save(self):
        pass


def _table(settings):
    return checkpoint_table(settings.schema_name, settings.table_name)


def test_store_implements_checkpoint_protocol(store):
    assert isinstance(store, CheckPoint)


def test_empty_store_loads_initial_commit_ts(store, settings):
    assert store.pos() == (settings.initial_commit_ts, {})


def test_forced_save_round_trips_through_fresh_store(store, settings, engine, safe_points):
    safe_points.force_save()
    store.save(1234, {"n1": Position("a", 100)})

    reopened = FlashCheckpoint(settings, engine=engine, safe_points=MetaCheckpoint())
    assert reopened.pos() == (1234, {"n1": Position("a", 0)})


def test_save_applies_margin_to_safe_point(store, safe_points):
    safe_points.push_pending(50, {"n1": Position(3, 7000), "n2": Position(4, 5000)})
    safe_points.mark_flushed(50)

    store.save(99, {"n1": Position(3, 9999)})

    assert store.pos() == (50, {"n1": Position(3, 2000), "n2": Position(4, 0)})


def test_save_replaces_previous_positions(store, safe_points):
    safe_points.force_save()
    store.save(10, {"n1": Position(1, 6000), "n2": Position(1, 6000)})
    safe_points.force_save()
    store.save(20, {"n2": Position(2, 8000)})

    assert store.pos() == (20, {"n2": Position(2, 3000)})


def test_save_without_safe_point_is_a_noop(settings, engine, clock):
    source = StaticSource(SafePoint(force_save=False, ok=False))
    store = FlashCheckpoint(settings, engine=engine, safe_points=source, clock=clock)

    store.save(500, {"n1": Position("a", 9000)})

    assert store.pos() == (settings.initial_commit_ts, {})
    assert fetch_checkpoint_rows(engine, _table(settings), settings.cluster_id) == []
    assert store.save_time == clock.now


def test_upsert_keeps_one_row_per_cluster(store, safe_points, settings, engine):
    for ts in (1, 2, 3):
        safe_points.force_save()
        store.save(ts, {"n1": Position("a", 6000 + ts)})

    rows = fetch_checkpoint_rows(engine, _table(settings), settings.cluster_id)
    assert len(rows) == 1
    assert '"commitTS": 3' in rows[0]


def test_check_throttles_until_interval_elapsed(store, safe_points, clock):
    assert store.check(1, {})

    safe_points.force_save()
    store.save(1, {})
    assert not store.check(2, {})

    clock.advance(2)
    assert not store.check(3, {})

    clock.advance(1)
    assert store.check(4, {})


def test_check_reports_pending_candidate(settings, engine, clock):
    source = StaticSource(SafePoint())
    store = FlashCheckpoint(settings, engine=engine, safe_points=source, clock=clock)

    store.check(77, {"n1": Position("a", 1)})

    assert source.pushed == [(77, {"n1": Position("a", 1)})]


def test_failed_save_keeps_state_but_advances_save_time(store, safe_points, clock, monkeypatch):
    safe_points.force_save()
    store.save(10, {"n1": Position("a", 6000)})
    before = store.pos()

    def broken_upsert(*_args, **_kwargs):
        raise BackendError("backend down")

    monkeypatch.setattr(store_module, "upsert_checkpoint", broken_upsert)
    clock.advance(10)
    safe_points.force_save()

    with pytest.raises(BackendError):
        store.save(20, {"n1": Position("a", 9000)})

    assert store.pos() == before
    assert store.save_time == clock.now
    assert not store.check(21, {})


def test_load_rejects_corrupt_blob(settings, engine):
    table = _table(settings)
    FlashCheckpoint(settings, engine=engine)
    upsert_checkpoint(engine, table, settings.cluster_id, "{broken")

    with pytest.raises(CheckpointDecodeError):
        FlashCheckpoint(settings, engine=engine)


def test_load_replaces_zero_commit_ts_with_initial(settings, engine):
    FlashCheckpoint(settings, engine=engine)
    upsert_checkpoint(
        engine,
        _table(settings),
        settings.cluster_id,
        '{"commitTS": 0, "positions": {"n1": {"Suffix": 1, "Offset": 10}}}',
    )

    store = FlashCheckpoint(settings, engine=engine)
    assert store.pos() == (settings.initial_commit_ts, {"n1": Position(1, 10)})


def test_load_uses_last_row_when_cluster_has_several(settings, engine):
    # Table without a key, as an append-only backend would have it. The newer
    # version is inserted first so the read order has to come from the version.
    loose = Table(
        settings.table_name,
        MetaData(),
        Column("clusterid", BigInteger),
        Column("checkpoint", Text),
        Column("version", BigInteger),
        schema=settings.schema_name,
    )
    cluster_id = settings.cluster_id
    with engine.begin() as conn:
        loose.create(conn)
        conn.execute(insert(loose).values(clusterid=cluster_id, checkpoint='{"commitTS": 2}', version=20))
        conn.execute(insert(loose).values(clusterid=cluster_id, checkpoint='{"commitTS": 1}', version=10))
        conn.execute(insert(loose).values(clusterid=cluster_id + 1, checkpoint='{"commitTS": 3}', version=30))

    store = FlashCheckpoint(settings, engine=engine)
    assert store.pos() == (2, {})


def test_pos_returns_a_copy(store, safe_points):
    safe_points.force_save()
    store.save(10, {"n1": Position("a", 6000)})

    _, positions = store.pos()
    positions["n2"] = Position("b", 1)

    assert "n2" not in store.pos()[1]


def test_str_renders_commit_ts_and_positions(store, safe_points):
    safe_points.force_save()
    store.save(10, {"n1": Position("a", 6000)})
    assert str(store) == "binlog commitTS = 10 and positions = {'n1': Position(suffix='a', offset=1000)}"


def test_readers_wait_for_save_in_progress(store, safe_points, monkeypatch):
    write_started = threading.Event()
    release_write = threading.Event()
    real_upsert = store_module.upsert_checkpoint

    def slow_upsert(*args, **kwargs):
        write_started.set()
        assert release_write.wait(5)
        real_upsert(*args, **kwargs)

    monkeypatch.setattr(store_module, "upsert_checkpoint", slow_upsert)
    before = store.pos()
    after = (900, {"n1": Position("a", 1000), "n2": Position("b", 2000)})

    safe_points.force_save()
    saver = threading.Thread(target=store.save, args=(900, {"n1": Position("a", 6000), "n2": Position("b", 7000)}))
    saver.start()
    assert write_started.wait(5)

    seen = []
    due = []
    readers = [threading.Thread(target=lambda: seen.append(store.pos())) for _ in range(4)]
    readers += [threading.Thread(target=lambda: due.append(store.check(950, {}))) for _ in range(4)]
    for reader in readers:
        reader.start()

    release_write.set()
    saver.join(5)
    for reader in readers:
        reader.join(5)

    assert len(seen) == 4
    assert all(snapshot in (before, after) for snapshot in seen)
    assert all(snapshot == after for snapshot in seen)
    # Checks also waited for the save, so they see the fresh save time.
    assert due == [False] * 4


def test_unsigned_cluster_id_round_trips(settings, engine, safe_points):
    big = settings.model_copy(update={"cluster_id": 2**63 + 5})
    store = FlashCheckpoint(big, engine=engine, safe_points=safe_points)
    assert store.pos() == (big.initial_commit_ts, {})

    safe_points.force_save()
    store.save(321, {"n1": Position("a", 6000)})

    reopened = FlashCheckpoint(big, engine=engine, safe_points=MetaCheckpoint())
    assert reopened.pos() == (321, {"n1": Position("a", 1000)})
    assert fetch_checkpoint_rows(engine, _table(settings), settings.cluster_id) == []
