from __future__ import annotations

import os
import threading
from typing import Callable, Dict, Iterable, Optional

from gatekeeper.core.admission import AdmissionGate
from gatekeeper.core.audit import AuditLogger
from gatekeeper.core.commands import WhitelistCommands
from gatekeeper.core.config.manager import ConfigManager
from gatekeeper.core.config.models import AppConfig
from gatekeeper.core.config.paths import ConfigFsPaths
from gatekeeper.core.errors import ConfigError, PersistenceError
from gatekeeper.core.locale import LocaleManager
from gatekeeper.core.logger import get_logger, setup_logging
from gatekeeper.core.notify import GrantStatusNotifier
from gatekeeper.core.whitelist.io import WhitelistPaths
from gatekeeper.core.whitelist.models import Grant, now_ms
from gatekeeper.core.whitelist.storage import FileWhitelistStorage
from gatekeeper.core.whitelist.store import WhitelistStore
from gatekeeper.core.whitelist.sweeper import ExpirySweeper


class GatekeeperRuntime:
    """
    Process lifecycle: builds every component from config on `start()`,
    re-applies config on `reload()`, and on `shutdown()` stops the sweeper
    and writes one last snapshot.

    Host hooks:
    - eviction handler `fn(display_name, kick_message)` disconnects a session;
    - message sender `fn(display_name, text)` delivers remaining-time updates;
    - online provider `fn() -> names` lists connected players.
    """

    def __init__(
        self,
        root: str = ".",
        *,
        logger=None,
        now: Optional[Callable[[], float]] = None,
        configure_logging: bool = False,
    ):
        self.root = root
        self.logger = get_logger(logger)
        self._now = now
        self._configure_logging = bool(configure_logging)
        self.fs = ConfigFsPaths(root)
        self.config_manager = ConfigManager(fs=self.fs, logger=self.logger)
        self.config: Optional[AppConfig] = None
        self.storage: Optional[FileWhitelistStorage] = None
        self.store: Optional[WhitelistStore] = None
        self.locale: Optional[LocaleManager] = None
        self.notifier: Optional[GrantStatusNotifier] = None
        self.gate: Optional[AdmissionGate] = None
        self.commands: Optional[WhitelistCommands] = None
        self.sweeper: Optional[ExpirySweeper] = None
        self._eviction_handler: Optional[Callable[[str, str], None]] = None
        self._sender: Optional[Callable[[str, str], None]] = None
        self._online: Optional[Callable[[], Iterable[str]]] = None
        self._lock = threading.RLock()
        self._started = False
        self._stopped = False

    @property
    def started(self) -> bool:
        return self._started and not self._stopped

    def now_ms(self) -> int:
        return now_ms(self._now)

    # ---- host hooks ----
    def set_eviction_handler(self, fn: Optional[Callable[[str, str], None]]) -> None:
        self._eviction_handler = fn

    def set_message_sender(self, fn: Optional[Callable[[str, str], None]]) -> None:
        self._sender = fn
        if self.notifier is not None:
            self.notifier.send = fn

    def set_online_provider(self, fn: Optional[Callable[[], Iterable[str]]]) -> None:
        self._online = fn
        if self.commands is not None:
            self.commands.online = fn

    # ---- lifecycle ----
    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            cfg = self.config_manager.load()
            self.config = cfg
            self._apply_logging(cfg)
            self.storage = self._build_storage(cfg)
            try:
                self.storage.init()
            except PersistenceError as e:
                self.logger.error(f"{e.user_message} {e.context.get('error', '')}")

            self.store = WhitelistStore(
                storage=self.storage,
                config=cfg.whitelist,
                grants=self._load_grants(cfg),
                on_revoked=self._evict,
                audit=self._build_audit(cfg),
                logger=self.logger,
                now=self._now,
            )
            self.locale = LocaleManager(
                locales_dir=self.fs.locales_dir,
                locale=cfg.messages.locale,
                use_client_locale=cfg.messages.use_client_locale,
                logger=self.logger,
            )
            self.notifier = GrantStatusNotifier(store=self.store, locale=self.locale, send=self._sender, logger=self.logger, now=self._now)
            self.gate = AdmissionGate(store=self.store, locale=self.locale, logger=self.logger)
            self.commands = WhitelistCommands(
                store=self.store,
                locale=self.locale,
                notifier=self.notifier,
                reload=self.reload,
                online=self._online,
                logger=self.logger,
                now=self._now,
            )
            self.sweeper = ExpirySweeper(store=self.store, interval_seconds=cfg.whitelist.sweep_interval_seconds, logger=self.logger)
            self.sweeper.start()
            self._started = True
            self.logger.info(f"Gatekeeper started with {len(self.store)} whitelisted players.")

    def reload(self) -> None:
        with self._lock:
            if not self.started:
                raise ConfigError("Runtime is not running.")
            cfg = self.config_manager.reload()
            old = self.config
            self.config = cfg
            self._apply_logging(cfg)
            if old is None or cfg.logging != old.logging:
                self.store.audit = self._build_audit(cfg)
            self.locale.set_locale(cfg.messages.locale, use_client_locale=cfg.messages.use_client_locale)

            if old is None or (cfg.whitelist.whitelist_file, cfg.whitelist.backup_keep) != (old.whitelist.whitelist_file, old.whitelist.backup_keep):
                self.storage = self._build_storage(cfg)
                self.store.storage = self.storage

            # Mutations do not take self._lock; the generation catches any
            # that land between here and the swap.
            generation = self.store.generation
            if self.store.has_unflushed_changes:
                # Memory is ahead of disk; re-reading would drop accepted changes.
                self.store.reload(cfg.whitelist)
            else:
                try:
                    grants = self.storage.load(case_sensitive=cfg.whitelist.case_sensitive)
                except PersistenceError as e:
                    self.logger.error(f"{e.user_message} Keeping in-memory whitelist.")
                    self.store.reload(cfg.whitelist)
                else:
                    self.store.reload(cfg.whitelist, grants, generation=generation)

            if old is None or cfg.whitelist.sweep_interval_seconds != old.whitelist.sweep_interval_seconds:
                self.sweeper.stop()
                self.sweeper = ExpirySweeper(store=self.store, interval_seconds=cfg.whitelist.sweep_interval_seconds, logger=self.logger)
                self.sweeper.start()
            self.logger.info("Gatekeeper configuration reloaded.")

    def shutdown(self) -> None:
        with self._lock:
            if not self._started or self._stopped:
                return
            self._stopped = True
            if self.sweeper is not None:
                self.sweeper.stop()
            if self.store is not None and not self.store.flush():
                self.logger.error("Final whitelist flush failed; last changes may be lost.")
            self.logger.info("Gatekeeper stopped.")

    # ---- internals ----
    def _apply_logging(self, cfg: AppConfig) -> None:
        if self._configure_logging:
            setup_logging(os.path.join(self.root, cfg.logging.log_dir), cfg.logging.level)

    def _build_audit(self, cfg: AppConfig) -> AuditLogger:
        return AuditLogger(path=os.path.join(self.root, cfg.logging.log_dir, cfg.logging.audit_file))

    def _build_storage(self, cfg: AppConfig) -> FileWhitelistStorage:
        paths = WhitelistPaths(data_dir=self.fs.data_dir, whitelist_file=cfg.whitelist.whitelist_file)
        return FileWhitelistStorage(paths, logger=self.logger, backup_keep=cfg.whitelist.backup_keep)

    def _load_grants(self, cfg: AppConfig) -> Dict[str, Grant]:
        try:
            return self.storage.load(case_sensitive=cfg.whitelist.case_sensitive)
        except PersistenceError as e:
            self.logger.error(f"{e.user_message} Starting with an empty whitelist.")
            return {}

    def _evict(self, display_name: str) -> None:
        handler = self._eviction_handler
        if handler is None:
            return
        handler(display_name, self.locale.render("kick-message", player=display_name))
