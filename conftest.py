"""Shared fixtures for the guard test suite."""

import pytest
from prometheus_client import CollectorRegistry

from biztone import GuardConfig, build_engine
from biztone.config import DEFAULT_WHITELIST_SEEDS
from biztone.errors import StorageError
from biztone.guard.list_override import ListOverride
from biztone.llm.mock_backend import MockToneBackend
from biztone.logging.metrics import MetricsExporter
from biztone.storage.kv_store import SettingsStore
from biztone.storage.list_store import ListStore


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore(SettingsStore):
    """Settings store whose every operation fails."""

    def __init__(self):
        super().__init__(use_mock=True)

    def get_json(self, key, default=None):
        raise StorageError("store offline")

    def set_json(self, key, value):
        raise StorageError("store offline")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return SettingsStore(use_mock=True)


@pytest.fixture
def metrics():
    return MetricsExporter(registry=CollectorRegistry())


@pytest.fixture
def lists(store):
    return ListStore(store)


@pytest.fixture
def overrides(lists):
    return ListOverride(lists, seeds=DEFAULT_WHITELIST_SEEDS)


@pytest.fixture
def tone():
    return MockToneBackend()


@pytest.fixture
def make_engine(store, metrics, tone):
    """Build a warmed-up engine; debounce is off unless requested."""

    def _make(tone_backend=None, scoring_backend=None, mode=None, **overrides):
        overrides.setdefault("debounce_ms", 0)
        config = GuardConfig(**overrides)
        engine = build_engine(
            config,
            store=store,
            tone_backend=tone_backend or tone,
            metrics=metrics,
            warm_up=True,
        )
        if scoring_backend is not None:
            engine.scoring_backend = scoring_backend
        if mode is not None:
            engine.mode_provider.set(mode)
        return engine

    return _make
