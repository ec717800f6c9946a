import pytest

from drainer_checkpoint.checkpoint.safepoint import MetaCheckpoint
from drainer_checkpoint.checkpoint.store import FlashCheckpoint
from drainer_checkpoint.config import Settings
from drainer_checkpoint.db.session import create_engine_from_settings


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        cluster_id=7,
        initial_commit_ts=400,
        save_interval_seconds=3.0,
    )


@pytest.fixture
def engine(settings):
    engine = create_engine_from_settings(settings)
    yield engine
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def safe_points() -> MetaCheckpoint:
    return MetaCheckpoint()


@pytest.fixture
def store(settings, engine, safe_points, clock) -> FlashCheckpoint:
    return FlashCheckpoint(settings, engine=engine, safe_points=safe_points, clock=clock)
