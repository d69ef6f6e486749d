"""
Shared pytest fixtures for kvspine tests.

This module provides:
- ``clock``: a controllable UTC clock patched into every module that reads time
- ``store``: one fresh store per local backend (map, syncmap, file, sql) with
  the background sweeper disabled, so expiry is driven by the test
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from kvspine.stores import FileStore, MapStore, SQLStore, SyncMapStore

# Modules that call utc_now() directly
_CLOCK_MODULES = [
    "kvspine.item",
    "kvspine.stores.memory",
    "kvspine.stores.syncmap",
    "kvspine.stores.file",
    "kvspine.stores.sql",
]

LOCAL_BACKENDS = ["map", "syncmap", "file", "sql"]


class FakeClock:
    """Callable returning a fixed UTC instant until advanced."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs: float) -> datetime:
        self.now += timedelta(seconds=seconds, **kwargs)
        return self.now


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock(datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC))
    for module in _CLOCK_MODULES:
        monkeypatch.setattr(f"{module}.utc_now", fake)
    return fake


def make_store(kind: str, tmp_path: Path, **overrides):
    """Build a local-backend store with the sweeper disabled."""
    overrides.setdefault("gc_interval", -1)
    if kind == "map":
        return MapStore(**overrides)
    if kind == "syncmap":
        return SyncMapStore(**overrides)
    if kind == "file":
        overrides.setdefault("directory", tmp_path / "kvs")
        return FileStore(**overrides)
    if kind == "sql":
        overrides.setdefault("database_url", f"sqlite:///{tmp_path / 'kv.db'}")
        return SQLStore(**overrides)
    raise ValueError(kind)


@pytest.fixture(params=LOCAL_BACKENDS)
def store(request: pytest.FixtureRequest, tmp_path: Path):
    s = make_store(request.param, tmp_path)
    yield s
    s.close()


@pytest.fixture
def file_store(tmp_path: Path):
    s = FileStore(directory=tmp_path / "kvs", gc_interval=-1)
    yield s
    s.close()
