from __future__ import annotations

import os
from typing import Any, Dict, Optional

from pydantic import ValidationError

from gatekeeper.core.config.io import atomic_write_json, ensure_dirs, quarantine_corrupt, read_json_file
from gatekeeper.core.config.models import AppConfig
from gatekeeper.core.config.paths import ConfigFsPaths
from gatekeeper.core.errors import ConfigError
from gatekeeper.core.logger import get_logger


class ConfigManager:
    """
    Loads config/gatekeeper.json.

    Startup never fails on config: a missing file is created with defaults,
    a corrupt file is moved to config/backups and replaced, and a file that
    fails validation is left in place while defaults are used.
    """

    def __init__(self, *, fs: Optional[ConfigFsPaths] = None, logger=None, read_only: bool = False):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = get_logger(logger)
        self.read_only = read_only
        self._cfg: Optional[AppConfig] = None

    # ---------- public API ----------
    def load(self) -> AppConfig:
        ensure_dirs(self.fs.config_dir, self.fs.backups_dir)
        rr = read_json_file(self.fs.app)
        if not rr.ok:
            if rr.error and rr.error.startswith("corrupt_json"):
                moved = quarantine_corrupt(self.fs.app, self.fs.backups_dir)
                self.logger.error(f"Config file is corrupt ({rr.error}); moved to {moved} and using defaults.")
            elif rr.error != "missing":
                self.logger.error(f"Could not read config file ({rr.error}); using defaults.")
            cfg = AppConfig()
            if not os.path.exists(self.fs.app):
                self._write_default(cfg)
            self._cfg = cfg
            return cfg

        try:
            cfg = self._validate(rr.data)
        except ConfigError as e:
            self.logger.error(f"{e.user_message} Using default values.")
            cfg = AppConfig()
        self._cfg = cfg
        self.logger.info("Configuration loaded successfully.")
        return cfg

    def get(self) -> AppConfig:
        if self._cfg is None:
            raise ConfigError("Config not loaded.")
        return self._cfg

    def reload(self) -> AppConfig:
        """
        Re-read the config file. An unreadable or invalid file keeps the
        previous config.
        """
        if self._cfg is None:
            return self.load()
        rr = read_json_file(self.fs.app)
        if not rr.ok:
            self.logger.warning(f"Config reload rejected (keeping previous): {rr.error}")
            return self._cfg
        try:
            cfg = self._validate(rr.data)
        except ConfigError as e:
            self.logger.warning(f"Config reload rejected (keeping previous): {e.user_message}")
            return self._cfg
        self._cfg = cfg
        self.logger.info("Configuration reloaded.")
        return cfg

    def save(self, cfg: AppConfig) -> None:
        if self.read_only:
            raise ConfigError("Config manager is read-only.")
        atomic_write_json(self.fs.app, cfg.model_dump())
        self._cfg = cfg

    # ---------- internals ----------
    @staticmethod
    def _validate(raw: Dict[str, Any]) -> AppConfig:
        try:
            return AppConfig.model_validate(raw)
        except ValidationError as e:
            fields = [".".join(str(p) for p in err.get("loc", ())) for err in e.errors()]
            raise ConfigError(f"Invalid configuration ({', '.join(fields)}).", errors=fields) from e

    def _write_default(self, cfg: AppConfig) -> None:
        if self.read_only:
            return
        try:
            atomic_write_json(self.fs.app, cfg.model_dump())
            self.logger.info(f"Created default config at {self.fs.app}")
        except OSError as e:
            self.logger.error(f"Could not create default config file: {e}")
