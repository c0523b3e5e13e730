from __future__ import annotations

import threading
from typing import Any, List, Optional

from gatekeeper.core.logger import get_logger
from gatekeeper.core.whitelist.models import Grant


class ExpirySweeper:
    """
    Background thread that retires expired grants every `interval_seconds`.

    Each tick removes expired grants, hands them to the store's eviction
    callback (when kick-on-revoke is enabled) and then flushes. Lazy
    removals made by admission checks are flushed here too.
    """

    def __init__(self, *, store: Any, interval_seconds: float = 5.0, logger=None):
        self.store = store
        self.interval_seconds = max(0.05, float(interval_seconds))
        self.logger = get_logger(logger)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        t = self._thread
        return t is not None and t.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running or self._stop.is_set():
                return
            self._thread = threading.Thread(target=self._loop, name="whitelist-sweeper", daemon=True)
            self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """
        Cancel future ticks and wait for an in-flight tick to finish.
        A stopped sweeper is never restarted.
        """
        self._stop.set()
        t = self._thread
        if t is not None and t.is_alive() and t is not threading.current_thread():
            t.join(timeout=timeout)

    def tick(self) -> List[Grant]:
        removed = self.store.evict_expired(flush=False)
        if removed:
            self.store.dispatch_evictions(removed)
        if removed or self.store.has_unflushed_changes:
            self.store.flush()
        return removed

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.tick()
            except Exception as e:  # noqa: BLE001
                self.logger.warning(f"Whitelist sweeper error: {e}")
