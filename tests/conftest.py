from __future__ import annotations

import os

import pytest

from gatekeeper.core.config.models import WhitelistConfig
from gatekeeper.core.config.paths import ConfigFsPaths
from gatekeeper.core.whitelist.store import WhitelistStore

from .helpers.fakes import DummyLogger, FakeClock, MemoryStorage


@pytest.fixture
def tmp_config_root(tmp_path):
    """
    Provides an isolated root with config/ under tmp_path.
    """
    fs = ConfigFsPaths(root=str(tmp_path))
    os.makedirs(fs.config_dir, exist_ok=True)
    return fs


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dummy_logger():
    return DummyLogger()


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def make_store(memory_storage, clock, dummy_logger):
    def _make(**kwargs):
        kwargs.setdefault("storage", memory_storage)
        kwargs.setdefault("config", WhitelistConfig())
        kwargs.setdefault("logger", dummy_logger)
        kwargs.setdefault("now", clock.time)
        return WhitelistStore(**kwargs)

    return _make
