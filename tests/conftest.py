"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from code_ledger.core.config import Config, StorageConfig, SyncConfig, TrackingConfig, get_config
from code_ledger.storage.buffer import PersistentBuffer
from code_ledger.trackers.activity import ActivityAccumulator

START = 1_700_000_000.0


class FakeClock:
    """Manually advanced epoch clock in seconds."""

    def __init__(self, start: float = START):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now

    def ms(self) -> int:
        return int(self.now * 1000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def accumulator(clock):
    """Accumulator with a flush cap large enough to stay out of the way."""
    return ActivityAccumulator(max_time_per_flush=10_000, clock=clock)


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "data" / "code-ledger-db.json"


@pytest.fixture
def buffer(store_path, clock):
    return PersistentBuffer(store_path, clock_ms=clock.ms)


@pytest.fixture
def config(tmp_path):
    """Config rooted in a temporary directory."""
    return Config(
        data_dir=tmp_path / "data",
        log_dir=tmp_path / "logs",
        config_dir=tmp_path / "config",
        tracking=TrackingConfig(),
        storage=StorageConfig(),
        sync=SyncConfig(api_url="http://collector.test", api_token="secret-token"),
    )


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Point environment-driven config at a temporary directory."""
    for key in ("CODE_LEDGER_SYNC__API_TOKEN", "CODE_LEDGER_SYNC__API_URL", "CODE_LEDGER_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CODE_LEDGER_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CODE_LEDGER_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("CODE_LEDGER_CONFIG_DIR", str(tmp_path / "config"))
    get_config.cache_clear()
    yield tmp_path
    get_config.cache_clear()
