from __future__ import annotations

import os
from typing import Dict, Iterable, List, Optional

from gatekeeper.core.errors import PersistenceError
from gatekeeper.core.logger import get_logger
from gatekeeper.core.whitelist.io import (
    WhitelistPaths,
    atomic_write_lines,
    backup_file,
    read_lines,
    write_new_file,
)
from gatekeeper.core.whitelist.models import Grant, canonicalize


DEFAULT_HEADER = [
    "# Gatekeeper whitelist: one player per line.",
    "# Use 'Name|expiresAtMillis' for timed access (milliseconds since the UTC epoch).",
    "# Blank lines and lines starting with '#' are ignored.",
]


class FileWhitelistStorage:
    """
    Line-oriented whitelist file.

    Format:
        Name               permanent grant
        Name|1730000000000 grant expiring at that epoch millisecond
    """

    def __init__(self, paths: WhitelistPaths, *, logger=None, backup_keep: int = 5):
        self.paths = paths
        self.logger = get_logger(logger)
        self.backup_keep = int(backup_keep)

    @property
    def path(self) -> str:
        return self.paths.whitelist_path

    def init(self) -> bool:
        """
        Create the default file if missing. Returns True if a file was created.
        """
        if os.path.exists(self.path):
            return False
        try:
            write_new_file(self.path, DEFAULT_HEADER)
        except FileExistsError:
            return False
        except OSError as e:
            raise PersistenceError("Could not create whitelist file.", path=self.path, error=str(e)) from e
        self.logger.info(f"Created default whitelist file at {self.path}")
        return True

    def load(self, *, case_sensitive: bool) -> Dict[str, Grant]:
        if not os.path.exists(self.path):
            return {}
        try:
            lines = read_lines(self.path)
        except OSError as e:
            raise PersistenceError("Could not read whitelist file.", path=self.path, error=str(e)) from e

        out: Dict[str, Grant] = {}
        for lineno, raw in enumerate(lines, start=1):
            grant = self._parse_line(raw, lineno=lineno, case_sensitive=case_sensitive)
            if grant is None:
                continue
            if grant.canonical_key in out:
                self.logger.warning(
                    f"Duplicate whitelist entry '{grant.display_name}' on line {lineno}; replacing '{out[grant.canonical_key].display_name}'."
                )
            out[grant.canonical_key] = grant
        self.logger.info(f"Loaded {len(out)} players from {os.path.basename(self.path)}")
        return out

    def save(self, grants: Iterable[Grant]) -> None:
        ordered = sorted(grants, key=lambda g: (g.display_name.casefold(), g.display_name))
        lines: List[str] = [g.to_line() for g in ordered]
        try:
            backup_file(self.path, self.paths.backups_dir, keep=self.backup_keep)
            atomic_write_lines(self.path, lines)
        except OSError as e:
            raise PersistenceError("Could not save whitelist file.", path=self.path, error=str(e)) from e

    # ---- internals ----
    def _parse_line(self, raw: str, *, lineno: int, case_sensitive: bool) -> Optional[Grant]:
        line = raw.strip()
        if not line or line.startswith("#"):
            return None
        expires: Optional[int] = None
        if "|" in line:
            name, suffix = (p.strip() for p in line.split("|", 1))
            if suffix:
                try:
                    expires = int(suffix)
                except ValueError:
                    self.logger.warning(f"Invalid expiry in whitelist line {lineno} '{line}', treating as permanent.")
        else:
            name = line
        if not name:
            return None
        return Grant(canonical_key=canonicalize(name, case_sensitive), display_name=name, expires_at_ms=expires)
