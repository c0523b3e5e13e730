from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from gatekeeper.core.logger import get_logger


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    reason: str
    kick_message: Optional[str] = None


class AdmissionGate:
    """
    Login-time check. Hot path: one lock-free map read, no disk I/O.
    """

    def __init__(self, *, store: Any, locale: Any, logger=None):
        self.store = store
        self.locale = locale
        self.logger = get_logger(logger)

    def check(self, name: str, *, bypass: bool = False, lang: Optional[str] = None) -> AdmissionDecision:
        if not self.store.config.enabled:
            return AdmissionDecision(True, "disabled")
        if bypass:
            return AdmissionDecision(True, "bypass")
        if self.store.is_admitted(name):
            return AdmissionDecision(True, "whitelisted")
        self.logger.info(f"Denied login for {name}: not whitelisted")
        return AdmissionDecision(False, "not_whitelisted", kick_message=self.locale.render("kick-message", lang, player=name))
