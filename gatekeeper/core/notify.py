from __future__ import annotations

from typing import Any, Callable, Optional

from gatekeeper.core.logger import get_logger
from gatekeeper.core.whitelist.models import Grant, now_ms


Render = Callable[..., str]


def format_remaining(grant: Optional[Grant], at_ms: int, render: Render) -> str:
    """
    Human remaining time for a grant: whole days, else whole hours, else
    minutes (at least 1). `render(key)` supplies the localized unit words.
    """
    if grant is None:
        return render("placeholder-na")
    if grant.is_permanent:
        return render("placeholder-permanent")
    left_ms = int(grant.expires_at_ms or 0) - int(at_ms)
    if left_ms <= 0:
        return render("placeholder-expired")
    minutes = left_ms // 60_000
    days, hours = minutes // 1440, minutes // 60
    if days > 0:
        return f"{days}{render('placeholder-days')}"
    if hours > 0:
        return f"{hours}{render('placeholder-hrs')}"
    return f"{max(1, minutes)}{render('placeholder-mins')}"


class GrantStatusNotifier:
    """
    Tells a connected player how long their access lasts after it changes.

    `send(display_name, text)` is supplied by the host; failures are logged.
    """

    def __init__(self, *, store: Any, locale: Any, send: Optional[Callable[[str, str], None]] = None, logger=None, now: Optional[Callable[[], float]] = None):
        self.store = store
        self.locale = locale
        self.send = send
        self.logger = get_logger(logger)
        self._now = now

    def remaining_text(self, name: str, lang: Optional[str] = None) -> str:
        grant = self.store.get_grant(name)
        return format_remaining(grant, now_ms(self._now), lambda key: self.locale.message(key, lang))

    def notify(self, name: str, lang: Optional[str] = None) -> bool:
        if self.send is None:
            return False
        grant = self.store.get_grant(name)
        display = grant.display_name if grant is not None else str(name).strip()
        text = self.remaining_text(name, lang)
        try:
            self.send(display, text)
        except Exception as e:  # noqa: BLE001
            self.logger.warning(f"Failed to notify {display} about whitelist status: {e}")
            return False
        return True
