from __future__ import annotations

import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional


def now_ms(clock: Optional[Callable[[], float]] = None) -> int:
    return int((clock or time.time)() * 1000)


def canonicalize(name: str, case_sensitive: bool) -> str:
    s = str(name or "").strip()
    return s if case_sensitive else s.casefold()


def validate_name(name: object) -> Optional[str]:
    """
    Returns the trimmed display name, or None if it cannot be stored as a
    single whitelist line.
    """
    if not isinstance(name, str):
        return None
    s = name.strip()
    if not s or s.startswith("#"):
        return None
    if "|" in s or "\n" in s or "\r" in s:
        return None
    return s


@dataclass(frozen=True)
class Grant:
    canonical_key: str
    display_name: str
    expires_at_ms: Optional[int] = None

    @classmethod
    def create(cls, display_name: str, *, case_sensitive: bool, expires_at_ms: Optional[int] = None) -> "Grant":
        name = str(display_name).strip()
        return cls(canonical_key=canonicalize(name, case_sensitive), display_name=name, expires_at_ms=expires_at_ms)

    @property
    def is_permanent(self) -> bool:
        return self.expires_at_ms is None

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.expires_at_ms is None:
            return None
        return datetime.fromtimestamp(self.expires_at_ms / 1000.0, tz=timezone.utc)

    def is_expired(self, at_ms: Optional[int] = None) -> bool:
        if self.expires_at_ms is None:
            return False
        return self.expires_at_ms <= (now_ms() if at_ms is None else at_ms)

    def remaining(self, at_ms: Optional[int] = None) -> Optional[timedelta]:
        if self.expires_at_ms is None:
            return None
        left = self.expires_at_ms - (now_ms() if at_ms is None else at_ms)
        return timedelta(milliseconds=max(0, left))

    def with_expiry(self, expires_at_ms: Optional[int]) -> "Grant":
        return replace(self, expires_at_ms=expires_at_ms)

    def rekeyed(self, case_sensitive: bool) -> "Grant":
        return replace(self, canonical_key=canonicalize(self.display_name, case_sensitive))

    def to_line(self) -> str:
        if self.expires_at_ms is None:
            return self.display_name
        return f"{self.display_name}|{int(self.expires_at_ms)}"


class ExtendMode(str, Enum):
    AUTO = "auto"
    ADD = "add"
    REPLACE = "replace"


class PermanentPolicy(str, Enum):
    REPLACE = "replace"
    REJECT = "reject"


class ExtendStatus(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    APPLIED = "APPLIED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    INVALID = "INVALID"


@dataclass(frozen=True)
class ExtendResult:
    status: ExtendStatus
    grant: Optional[Grant] = None
    previous: Optional[Grant] = None

    @property
    def applied(self) -> bool:
        return self.status == ExtendStatus.APPLIED
