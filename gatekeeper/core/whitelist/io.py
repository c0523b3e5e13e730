from __future__ import annotations

import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class WhitelistPaths:
    data_dir: str = "data"
    whitelist_file: str = "whitelist.txt"

    @property
    def whitelist_path(self) -> str:
        return os.path.join(self.data_dir, self.whitelist_file)

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.data_dir, "backups")


def read_lines(path: str) -> List[str]:
    # Undecodable bytes become U+FFFD so one bad line never sinks the load.
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read().splitlines()


def write_new_file(path: str, lines: Iterable[str]) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "x", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")


def backup_file(path: str, backups_dir: str, *, keep: int) -> Optional[str]:
    if keep <= 0 or not os.path.exists(path):
        return None
    os.makedirs(backups_dir, exist_ok=True)
    base = os.path.basename(path)
    ts = time.strftime("%Y%m%d_%H%M%S", time.gmtime())
    out = os.path.join(backups_dir, f"{base}.{ts}.{time.time_ns() % 1_000_000:06d}.bak")
    try:
        shutil.copy2(path, out)
    except OSError:
        return None
    _enforce_backup_retention(backups_dir, prefix=f"{base}.", keep=keep)
    return out


def _enforce_backup_retention(backups_dir: str, *, prefix: str, keep: int) -> None:
    try:
        files = [os.path.join(backups_dir, f) for f in os.listdir(backups_dir) if f.startswith(prefix) and f.endswith(".bak")]
        files.sort(key=lambda p: (os.path.getmtime(p), p), reverse=True)
        for p in files[int(keep) :]:
            try:
                os.remove(p)
            except OSError:
                pass
    except OSError:
        return


def atomic_write_lines(path: str, lines: Iterable[str]) -> None:
    """
    Write to a sibling temp file, fsync, then os.replace over `path`.
    On failure the temp file is removed and `path` is untouched.
    """
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".tmp_whitelist_", suffix=".txt", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
        _fsync_dir(directory)
    finally:
        try:
            if os.path.exists(tmp):
                os.remove(tmp)
        except OSError:
            pass


def _fsync_dir(directory: str) -> None:
    # Makes the rename itself durable; not supported everywhere.
    try:
        dfd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(dfd)
    except OSError:
        pass
    finally:
        os.close(dfd)
