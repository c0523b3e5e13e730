from __future__ import annotations

import threading
import time
from datetime import timedelta

from gatekeeper.core.config.models import WhitelistConfig
from gatekeeper.core.whitelist.sweeper import ExpirySweeper


def test_tick_removes_kicks_and_flushes(make_store, memory_storage, clock):
    kicked = []
    store = make_store(config=WhitelistConfig(kick_on_revoke=True), on_revoked=kicked.append)
    store.grant("Perm")
    store.grant("Temp", timedelta(seconds=5))
    saves_before = len(memory_storage.saves)

    sweeper = ExpirySweeper(store=store, interval_seconds=60)
    assert sweeper.tick() == []
    assert len(memory_storage.saves) == saves_before

    clock.advance(5)
    removed = sweeper.tick()
    assert [g.display_name for g in removed] == ["Temp"]
    assert kicked == ["Temp"]
    assert memory_storage.last_names == ["Perm"]
    assert not store.is_admitted("Temp")


def test_tick_flushes_lazy_removals(make_store, memory_storage, clock):
    store = make_store()
    store.grant("Temp", timedelta(seconds=5))
    clock.advance(6)
    assert store.is_admitted("Temp") is False
    assert memory_storage.last_names == ["Temp"]

    ExpirySweeper(store=store).tick()
    assert memory_storage.last_names == []
    assert not store.has_unflushed_changes


def test_tick_retries_failed_flush(make_store, memory_storage):
    store = make_store()
    memory_storage.fail = True
    store.grant("Steve")
    memory_storage.fail = False
    ExpirySweeper(store=store).tick()
    assert memory_storage.last_names == ["Steve"]


def test_background_loop_sweeps_and_stops(make_store, memory_storage, clock):
    store = make_store()
    store.grant("Temp", timedelta(seconds=1))
    clock.advance(2)

    sweeper = ExpirySweeper(store=store, interval_seconds=0.05)
    sweeper.start()
    sweeper.start()
    assert sweeper.running
    deadline = time.time() + 5
    while store.get_grant("Temp") is not None and time.time() < deadline:
        time.sleep(0.02)
    sweeper.stop()
    assert not sweeper.running
    assert store.get_grant("Temp") is None
    assert memory_storage.last_names == []

    # A stopped sweeper stays stopped.
    sweeper.start()
    assert not sweeper.running


def test_loop_survives_tick_errors(dummy_logger):
    calls = []
    done = threading.Event()

    class FlakyStore:
        has_unflushed_changes = False

        def evict_expired(self, *, flush=True):
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            done.set()
            return []

    sweeper = ExpirySweeper(store=FlakyStore(), interval_seconds=0.05, logger=dummy_logger)
    sweeper.start()
    assert done.wait(5)
    sweeper.stop()
    assert any("sweeper error" in m for m in dummy_logger.messages("warning"))
