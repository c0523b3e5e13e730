from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from gatekeeper.core.audit import AuditLogger
from gatekeeper.core.config.models import WhitelistConfig
from gatekeeper.core.errors import PersistenceError
from gatekeeper.core.logger import get_logger
from gatekeeper.core.whitelist.models import (
    ExtendMode,
    ExtendResult,
    ExtendStatus,
    Grant,
    PermanentPolicy,
    canonicalize,
    validate_name,
)


def _more_permissive(a: Grant, b: Grant) -> Grant:
    if a.is_permanent:
        return a
    if b.is_permanent:
        return b
    return a if int(a.expires_at_ms or 0) >= int(b.expires_at_ms or 0) else b


class GrantMap:
    """
    Concurrent canonical-key -> Grant map.

    Reads are lock-free: the (case_sensitive, dict) pair is replaced as one
    tuple, so a reader sees either the state before a re-key or after it.
    Per-key check-then-act operations run under one of N stripe locks chosen
    by the case-folded name, which maps to the same stripe under either case
    policy. `rekey` takes every stripe.

    `generation` moves on every successful change and is only written while
    a stripe lock is held.
    """

    def __init__(self, *, case_sensitive: bool = False, stripes: int = 16):
        self._stripes: Tuple[threading.Lock, ...] = tuple(threading.Lock() for _ in range(max(1, int(stripes))))
        self._state: Tuple[bool, Dict[str, Grant]] = (bool(case_sensitive), {})
        self._generation = 0
        self._generation_lock = threading.Lock()

    @property
    def case_sensitive(self) -> bool:
        return self._state[0]

    @property
    def generation(self) -> int:
        return self._generation

    def _bump(self) -> None:
        # Different stripes may bump concurrently.
        with self._generation_lock:
            self._generation += 1

    def __len__(self) -> int:
        return len(self._state[1])

    def _lock_for(self, name: str) -> threading.Lock:
        return self._stripes[hash(str(name).strip().casefold()) % len(self._stripes)]

    def get(self, name: str) -> Optional[Grant]:
        cs, data = self._state
        return data.get(canonicalize(name, cs))

    def snapshot(self) -> List[Grant]:
        return list(self._state[1].copy().values())

    def put_if_absent(self, grant: Grant) -> Optional[Grant]:
        """
        Insert unless the key is taken. Returns the existing grant, or None
        if `grant` was inserted.
        """
        with self._lock_for(grant.display_name):
            cs, data = self._state
            g = self._keyed(grant, cs)
            existing = data.get(g.canonical_key)
            if existing is None:
                data[g.canonical_key] = g
                self._bump()
            return existing

    def replace(self, expected: Grant, new: Grant) -> bool:
        """
        Swap `expected` for `new` only if `expected` is still the live object.
        """
        with self._lock_for(new.display_name):
            cs, data = self._state
            g = self._keyed(new, cs)
            if data.get(g.canonical_key) is not expected:
                return False
            data[g.canonical_key] = g
            self._bump()
            return True

    def remove(self, name: str, expected: Optional[Grant] = None) -> Optional[Grant]:
        with self._lock_for(name):
            cs, data = self._state
            key = canonicalize(name, cs)
            current = data.get(key)
            if current is None or (expected is not None and current is not expected):
                return None
            del data[key]
            self._bump()
            return current

    def rekey(
        self,
        case_sensitive: bool,
        grants: Optional[Iterable[Grant]] = None,
        *,
        if_generation: Optional[int] = None,
    ) -> Tuple[List[Tuple[Grant, Grant]], bool, int]:
        """
        Replace the whole map under `case_sensitive`, from `grants` or from the
        current contents. With `if_generation`, `grants` is used only if no
        change landed since that generation was read; otherwise the current
        contents are re-keyed instead.

        Returns (collisions, used_grants, generation) where collisions are
        (kept, dropped) pairs for keys that collided.
        """
        for lk in self._stripes:
            lk.acquire()
        try:
            use_grants = grants is not None and (if_generation is None or if_generation == self._generation)
            source = list(grants) if use_grants else list(self._state[1].values())
            out: Dict[str, Grant] = {}
            collisions: List[Tuple[Grant, Grant]] = []
            for g in source:
                g = self._keyed(g, case_sensitive)
                prev = out.get(g.canonical_key)
                if prev is not None:
                    kept = _more_permissive(prev, g)
                    collisions.append((kept, g if kept is prev else prev))
                    g = kept
                out[g.canonical_key] = g
            self._state = (bool(case_sensitive), out)
            self._bump()
            return collisions, use_grants, self._generation
        finally:
            for lk in reversed(self._stripes):
                lk.release()

    @staticmethod
    def _keyed(grant: Grant, case_sensitive: bool) -> Grant:
        if grant.canonical_key == canonicalize(grant.display_name, case_sensitive):
            return grant
        return grant.rekeyed(case_sensitive)


class WhitelistStore:
    """
    Owner of the live whitelist.

    Mutations are applied to the in-memory map first and then flushed to
    storage as a full snapshot. Storage I/O, audit writes and eviction
    callbacks always run after the map locks are released. A failed flush
    leaves memory authoritative and is retried by the next flush.
    """

    def __init__(
        self,
        *,
        storage: Any,
        config: Optional[WhitelistConfig] = None,
        grants: Optional[Dict[str, Grant]] = None,
        on_revoked: Optional[Callable[[str], None]] = None,
        audit: Optional[AuditLogger] = None,
        logger=None,
        now: Optional[Callable[[], float]] = None,
        stripes: int = 16,
    ) -> None:
        self.storage = storage
        self._config = config or WhitelistConfig()
        self.on_revoked = on_revoked
        self.audit = audit
        self.logger = get_logger(logger)
        self._now = now or time.time
        self._map = GrantMap(case_sensitive=self._config.case_sensitive, stripes=stripes)
        if grants:
            self._map.rekey(self._config.case_sensitive, grants.values())
        self._flush_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._dirty = False

    @property
    def config(self) -> WhitelistConfig:
        return self._config

    @property
    def has_unflushed_changes(self) -> bool:
        with self._state_lock:
            return self._dirty

    @property
    def generation(self) -> int:
        """Read before loading from disk and pass to `reload`."""
        return self._map.generation

    def __len__(self) -> int:
        return len(self._map)

    # ---- reads ----
    def is_admitted(self, name: str) -> bool:
        if not isinstance(name, str) or not name.strip():
            return False
        g = self._map.get(name)
        if g is None:
            return False
        if not g.is_expired(self._now_ms()):
            return True
        # Lazy expiry: drop the stale grant now, persist on the next flush.
        if self._map.remove(name, expected=g) is not None:
            self._mark_dirty()
            self.logger.info(f"Whitelist grant for {g.display_name} expired")
        return False

    def get_grant(self, name: str) -> Optional[Grant]:
        if not isinstance(name, str) or not name.strip():
            return None
        return self._map.get(name)

    def list_active(self) -> List[str]:
        now = self._now_ms()
        names = [g.display_name for g in self._map.snapshot() if not g.is_expired(now)]
        return sorted(names, key=lambda n: (n.casefold(), n))

    # ---- mutations ----
    def grant(self, name: str, duration: Optional[timedelta] = None) -> bool:
        display = validate_name(name)
        if display is None:
            return False
        expires: Optional[int] = None
        if duration is not None:
            if not isinstance(duration, timedelta) or duration <= timedelta(0):
                return False
            expires = self._now_ms() + duration // timedelta(milliseconds=1)

        new = Grant.create(display, case_sensitive=self._map.case_sensitive, expires_at_ms=expires)
        while True:
            existing = self._map.put_if_absent(new)
            if existing is None:
                break
            if not existing.is_expired(self._now_ms()):
                return False
            if self._map.replace(existing, new):
                break

        self._after_mutation("whitelist.grant", {"player": display, "expires_at_ms": expires})
        return True

    def revoke(self, name: str) -> bool:
        if not isinstance(name, str) or not name.strip():
            return False
        removed = self._map.remove(name)
        if removed is None:
            return False
        self._after_mutation("whitelist.revoke", {"player": removed.display_name})
        self.dispatch_evictions([removed])
        return True

    def set_expiry(self, name: str, expires_at_ms: Optional[int]) -> bool:
        if not isinstance(name, str) or not name.strip():
            return False
        expires = None if expires_at_ms is None else int(expires_at_ms)
        while True:
            current = self._map.get(name)
            if current is None:
                return False
            if self._map.replace(current, current.with_expiry(expires)):
                break
        self._after_mutation("whitelist.set_expiry", {"player": current.display_name, "expires_at_ms": expires})
        return True

    def extend(
        self,
        name: str,
        duration: timedelta,
        *,
        mode: ExtendMode = ExtendMode.AUTO,
        permanent_policy: PermanentPolicy = PermanentPolicy.REPLACE,
    ) -> ExtendResult:
        """
        AUTO: permanent -> `permanent_policy`; active -> add on top of the
        remaining time; expired -> EXPIRED, the caller picks ADD or REPLACE.
        ADD: current expiry (now for permanent grants) + duration.
        REPLACE: now + duration.
        NOT_FOUND means the caller should fall back to `grant`.
        """
        if not isinstance(duration, timedelta) or duration <= timedelta(0):
            return ExtendResult(ExtendStatus.INVALID)
        if not isinstance(name, str) or not name.strip():
            return ExtendResult(ExtendStatus.INVALID)
        delta = duration // timedelta(milliseconds=1)
        mode = ExtendMode(mode)

        while True:
            current = self._map.get(name)
            if current is None:
                return ExtendResult(ExtendStatus.NOT_FOUND)
            now = self._now_ms()
            if current.is_permanent and permanent_policy == PermanentPolicy.REJECT:
                return ExtendResult(ExtendStatus.REJECTED, previous=current)

            if mode == ExtendMode.REPLACE or current.is_permanent:
                new_expiry = now + delta
            elif mode == ExtendMode.AUTO and current.is_expired(now):
                return ExtendResult(ExtendStatus.EXPIRED, previous=current)
            else:
                new_expiry = int(current.expires_at_ms or now) + delta

            updated = current.with_expiry(new_expiry)
            if self._map.replace(current, updated):
                break

        self._after_mutation(
            "whitelist.set_expiry",
            {"player": current.display_name, "expires_at_ms": new_expiry, "mode": mode.value},
        )
        return ExtendResult(ExtendStatus.APPLIED, grant=updated, previous=current)

    def evict_expired(self, *, flush: bool = True) -> List[Grant]:
        now = self._now_ms()
        removed: List[Grant] = []
        for g in self._map.snapshot():
            if g.is_expired(now) and self._map.remove(g.display_name, expected=g) is not None:
                removed.append(g)
        if not removed:
            return removed
        self._mark_dirty()
        for g in removed:
            self._audit("whitelist.expired", {"player": g.display_name, "expires_at_ms": g.expires_at_ms})
        self.logger.info(f"Removed {len(removed)} expired whitelist grant(s): {', '.join(g.display_name for g in removed)}")
        if flush:
            self.flush()
        return removed

    def reload(
        self,
        config: WhitelistConfig,
        grants: Optional[Dict[str, Grant]] = None,
        *,
        generation: Optional[int] = None,
    ) -> None:
        """
        Apply `config` and re-key every grant under its case policy. With
        `grants`, the map is replaced by that set (e.g. freshly read from disk).

        `generation` is the value of `self.generation` taken before `grants`
        was read. If any mutation landed since, `grants` is stale and the
        in-memory map is re-keyed instead.
        """
        self._config = config
        collisions, used_grants, gen = self._map.rekey(
            bool(config.case_sensitive),
            grants.values() if grants is not None else None,
            if_generation=generation,
        )
        if grants is not None and not used_grants:
            self.logger.info("Whitelist changed while the file was being read; keeping in-memory grants.")
        for kept, dropped in collisions:
            self.logger.warning(f"Whitelist entries '{kept.display_name}' and '{dropped.display_name}' collide; keeping '{kept.display_name}'.")
        self._audit("whitelist.reload", {"case_sensitive": bool(config.case_sensitive), "entries": len(self._map), "collisions": len(collisions)})
        if used_grants and not collisions:
            with self._state_lock:
                # A change after the swap has its own dirty mark to keep.
                if self._map.generation == gen:
                    self._dirty = False
            return
        self._mark_dirty()
        self.flush()

    # ---- persistence ----
    def flush(self) -> bool:
        with self._flush_lock:
            with self._state_lock:
                self._dirty = False
            snapshot = self._map.snapshot()
            try:
                self.storage.save(snapshot)
            except PersistenceError as e:
                with self._state_lock:
                    self._dirty = True
                self.logger.error(f"Whitelist flush failed; in-memory state is ahead of disk: {e.user_message} {e.context.get('error', '')}")
                return False
        return True

    # ---- side effects ----
    def dispatch_evictions(self, grants: Iterable[Grant]) -> int:
        grants = list(grants)
        callback = self.on_revoked
        if not grants or callback is None or not self._config.kick_on_revoke:
            return 0
        sent = 0
        for g in grants:
            try:
                callback(g.display_name)
                sent += 1
            except Exception as e:  # noqa: BLE001
                self.logger.warning(f"Eviction callback failed for {g.display_name}: {e}")
        return sent

    # ---- internals ----
    def _now_ms(self) -> int:
        return int(self._now() * 1000)

    def _mark_dirty(self) -> None:
        with self._state_lock:
            self._dirty = True

    def _after_mutation(self, event: str, details: Dict[str, Any]) -> None:
        self._mark_dirty()
        self._audit(event, details)
        self.flush()

    def _audit(self, event: str, details: Dict[str, Any]) -> None:
        if self.audit is None:
            return
        try:
            self.audit.log(event=event, outcome="ok", details=details)
        except OSError as e:
            self.logger.warning(f"Audit write failed for {event}: {e}")
