from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ConfigFsPaths:
    root: str = "."

    @property
    def config_dir(self) -> str:
        return os.path.join(self.root, "config")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.config_dir, "backups")

    @property
    def data_dir(self) -> str:
        return os.path.join(self.root, "data")

    @property
    def locales_dir(self) -> str:
        return os.path.join(self.root, "locales")

    # Files
    @property
    def app(self) -> str:
        return os.path.join(self.config_dir, "gatekeeper.json")
