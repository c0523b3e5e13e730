"""
Duration strings accepted by the `add` and `extend` commands.

Two grammars:
- ISO-8601 durations (`P1D`, `PT12H`, `p2dt30m`), days and time parts only;
- `<amount><unit>` tokens (`7d`, `30 min`, `1mo`).

Months and years are fixed approximations (30 and 365 days).
"""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

_SIMPLE = re.compile(r"^\s*(\d+)\s*([a-zA-Z]+)\s*$", re.ASCII)
_ISO = re.compile(
    r"^P(?:([-+]?\d+)D)?"
    r"(T(?:([-+]?\d+)H)?(?:([-+]?\d+)M)?(?:([-+]?\d+)(?:[.,](\d{0,9}))?S)?)?$",
    re.ASCII,
)

_UNIT_SECONDS: Dict[str, int] = {}
for _aliases, _seconds in (
    (("s", "sec", "secs", "second", "seconds"), 1),
    (("m", "min", "mins", "minute", "minutes"), 60),
    (("h", "hr", "hrs", "hour", "hours"), 3600),
    (("d", "day", "days"), 86400),
    (("w", "wk", "wks", "week", "weeks"), 7 * 86400),
    (("mo", "mon", "month", "months"), 30 * 86400),
    (("y", "yr", "yrs", "year", "years"), 365 * 86400),
):
    for _alias in _aliases:
        _UNIT_SECONDS[_alias] = _seconds


def parse_duration(text: Any) -> Optional[timedelta]:
    """
    Parse a duration string. Returns None for anything that is not a valid
    duration; never raises.
    """
    if not isinstance(text, str) or not text.strip():
        return None
    s = text.strip()
    try:
        if s[0] in "Pp":
            return _parse_iso(s.upper())
        return _parse_simple(s)
    except (OverflowError, ValueError, ArithmeticError):
        return None


def _parse_simple(s: str) -> Optional[timedelta]:
    m = _SIMPLE.match(s)
    if not m:
        return None
    amount = int(m.group(1))
    if amount <= 0:
        return None
    unit_seconds = _UNIT_SECONDS.get(m.group(2).lower())
    if unit_seconds is None:
        return None
    return timedelta(seconds=amount * unit_seconds)


def _parse_iso(s: str) -> Optional[timedelta]:
    m = _ISO.match(s)
    if not m:
        return None
    days, t_part, hours, minutes, seconds, fraction = m.groups()
    if days is None and t_part is None:
        return None
    if t_part is not None and hours is None and minutes is None and seconds is None:
        return None

    total = timedelta(days=int(days or 0), hours=int(hours or 0), minutes=int(minutes or 0))
    if seconds is not None:
        secs = Decimal(seconds)
        if fraction:
            frac = Decimal("0." + fraction)
            secs = secs - frac if seconds.startswith("-") else secs + frac
        total += timedelta(seconds=float(secs))
    # Signed components are allowed, but the sum must be a positive span.
    if total <= timedelta(0):
        return None
    return total


def format_duration_compact(td: timedelta) -> str:
    """
    Largest whole unit, e.g. `7d`, `3h`, `45m`, `10s`.
    """
    seconds = int(td.total_seconds())
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size and seconds % size == 0:
            return f"{seconds // size}{unit}"
    return f"{seconds}s"
