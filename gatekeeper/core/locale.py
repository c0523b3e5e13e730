from __future__ import annotations

import os
import re
import threading
from typing import Any, Dict, Optional

from gatekeeper.core.config.io import atomic_write_json, read_json_file
from gatekeeper.core.logger import get_logger


BUILTIN_MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "help-message": "Usage: whitelist <add|remove|extend|list|reload> ...",
        "usage-add": "Usage: whitelist add <player> [duration]",
        "usage-remove": "Usage: whitelist remove <player>",
        "usage-extend": "Usage: whitelist extend <player> <duration> [add|replace]",
        "unknown-subcommand": "Unknown subcommand '{subcommand}'. Use: add, remove, extend, list, reload.",
        "kick-message": "You are not whitelisted on this server!",
        "no-permission": "You do not have permission to use this command.",
        "invalid-player": "'{player}' is not a valid player name.",
        "invalid-duration": "Invalid duration '{duration}'. Examples: 7d, 12h, 30min, 1mo, P1DT2H.",
        "player-added": "Player {player} has been added to the whitelist.",
        "player-added-temp": "Player {player} has been added to the whitelist until {until}.",
        "player-already-exists": "Player {player} is already whitelisted.",
        "player-removed": "Player {player} has been removed from the whitelist.",
        "player-not-found": "Player {player} is not whitelisted.",
        "cannot-remove-self": "You cannot remove yourself from the whitelist.",
        "player-extended-add": "Access for {player} extended by {duration}, now until {until}.",
        "player-extended-replace": "Access for {player} now lasts until {until}.",
        "player-extend-rejected": "Player {player} has permanent access; nothing to extend.",
        "extend-expired-title": "Access for {player} expired at {expired}. Choose how to extend:",
        "extend-option-add": "  add on top of the old expiry: whitelist extend {player} {duration} add",
        "extend-option-replace": "  start fresh from now: whitelist extend {player} {duration} replace",
        "list-header": "Whitelisted players ({count}): {players}",
        "list-empty": "The whitelist is empty.",
        "reload-success": "Configuration and whitelist reloaded.",
        "placeholder-permanent": "permanent",
        "placeholder-expired": "expired",
        "placeholder-na": "n/a",
        "placeholder-days": "d",
        "placeholder-hrs": "h",
        "placeholder-mins": "m",
    },
    "ru": {
        "help-message": "Использование: whitelist <add|remove|extend|list|reload> ...",
        "usage-add": "Использование: whitelist add <игрок> [срок]",
        "usage-remove": "Использование: whitelist remove <игрок>",
        "usage-extend": "Использование: whitelist extend <игрок> <срок> [add|replace]",
        "unknown-subcommand": "Неизвестная подкоманда '{subcommand}'. Доступны: add, remove, extend, list, reload.",
        "kick-message": "Вы не в белом списке этого сервера!",
        "no-permission": "У вас нет прав для использования этой команды.",
        "invalid-player": "'{player}' не является допустимым именем игрока.",
        "invalid-duration": "Неверный срок '{duration}'. Примеры: 7d, 12h, 30min, 1mo, P1DT2H.",
        "player-added": "Игрок {player} был добавлен в белый список.",
        "player-added-temp": "Игрок {player} добавлен в белый список до {until}.",
        "player-already-exists": "Игрок {player} уже находится в белом списке.",
        "player-removed": "Игрок {player} был удален из белого списка.",
        "player-not-found": "Игрока {player} нет в белом списке.",
        "cannot-remove-self": "Вы не можете удалить себя из белого списка.",
        "player-extended-add": "Доступ для {player} продлен на {duration}, теперь до {until}.",
        "player-extended-replace": "Доступ для {player} теперь действует до {until}.",
        "player-extend-rejected": "У игрока {player} бессрочный доступ; продлевать нечего.",
        "extend-expired-title": "Доступ для {player} истек {expired}. Выберите способ продления:",
        "extend-option-add": "  прибавить к старому сроку: whitelist extend {player} {duration} add",
        "extend-option-replace": "  начать заново с текущего момента: whitelist extend {player} {duration} replace",
        "list-header": "Игроки в белом списке ({count}): {players}",
        "list-empty": "Белый список пуст.",
        "reload-success": "Конфигурация и белый список перезагружены.",
        "placeholder-permanent": "бессрочно",
        "placeholder-expired": "истек",
        "placeholder-na": "н/д",
        "placeholder-days": "д",
        "placeholder-hrs": "ч",
        "placeholder-mins": "м",
    },
}

DEFAULT_LOCALE = "en"
_PLACEHOLDER = re.compile(r"\{([A-Za-z0-9_-]+)\}")
_LOCALE_CODE = re.compile(r"^[a-z_-]{1,16}$")
_CLIENT_CACHE_MAX = 64


def render_template(template: str, placeholders: Dict[str, Any]) -> str:
    # Single pass: substituted values are never scanned for placeholders again.
    def _sub(m: "re.Match[str]") -> str:
        key = m.group(1)
        return str(placeholders[key]) if key in placeholders else m.group(0)

    return _PLACEHOLDER.sub(_sub, template)


class LocaleManager:
    """
    Message catalogs stored as locales/<code>.json.

    Built-in catalogs are written on first run so operators can edit them.
    A missing locale falls back to English; a missing key renders a marker.
    """

    def __init__(self, *, locales_dir: str, locale: str = DEFAULT_LOCALE, use_client_locale: bool = False, logger=None):
        self.locales_dir = locales_dir
        self.locale = (locale or DEFAULT_LOCALE).lower()
        self.use_client_locale = bool(use_client_locale)
        self.logger = get_logger(logger)
        self._lock = threading.Lock()
        self._messages: Dict[str, str] = {}
        self._client_cache: Dict[str, Optional[Dict[str, str]]] = {}
        self.reload()

    def reload(self) -> None:
        for code in BUILTIN_MESSAGES:
            self._save_default_locale(code)

        if not _LOCALE_CODE.match(self.locale):
            self.logger.warning(f"Invalid locale code '{self.locale}'. Using '{DEFAULT_LOCALE}'.")
            self.locale = DEFAULT_LOCALE
        path = os.path.join(self.locales_dir, f"{self.locale}.json")
        if not os.path.exists(path):
            self.logger.warning(f"Locale file '{self.locale}.json' not found. Falling back to '{DEFAULT_LOCALE}.json'.")
            path = os.path.join(self.locales_dir, f"{DEFAULT_LOCALE}.json")

        messages = self._read_catalog(path)
        if messages is None:
            self.logger.error(f"Failed to load locale file '{os.path.basename(path)}'. Using built-in messages.")
            messages = dict(BUILTIN_MESSAGES.get(self.locale) or BUILTIN_MESSAGES[DEFAULT_LOCALE])
        else:
            self.logger.info(f"Loaded messages from '{os.path.basename(path)}'.")
        with self._lock:
            self._messages = messages
            self._client_cache = {}

    def set_locale(self, locale: str, *, use_client_locale: Optional[bool] = None) -> None:
        self.locale = (locale or DEFAULT_LOCALE).lower()
        if use_client_locale is not None:
            self.use_client_locale = bool(use_client_locale)
        self.reload()

    def message(self, key: str, lang: Optional[str] = None) -> str:
        with self._lock:
            messages = self._messages
        if lang and self.use_client_locale:
            client = self._client_catalog(lang)
            if client is not None and key in client:
                return client[key]
        return messages.get(key, f"Missing message for key: {key}")

    def render(self, key: str, lang: Optional[str] = None, **placeholders: Any) -> str:
        return render_template(self.message(key, lang), placeholders)

    # ---- internals ----
    def _client_catalog(self, lang: str) -> Optional[Dict[str, str]]:
        code = str(lang).strip().lower()
        if not _LOCALE_CODE.match(code):
            return None
        with self._lock:
            if code in self._client_cache:
                return self._client_cache[code]
        path = os.path.join(self.locales_dir, f"{code}.json")
        catalog = self._read_catalog(path) if os.path.exists(path) else None
        with self._lock:
            if len(self._client_cache) < _CLIENT_CACHE_MAX:
                self._client_cache[code] = catalog
        return catalog

    def _read_catalog(self, path: str) -> Optional[Dict[str, str]]:
        rr = read_json_file(path)
        if not rr.ok:
            return None
        return {str(k): str(v) for k, v in rr.data.items() if isinstance(v, (str, int, float))}

    def _save_default_locale(self, code: str) -> None:
        path = os.path.join(self.locales_dir, f"{code}.json")
        if os.path.exists(path):
            return
        try:
            atomic_write_json(path, BUILTIN_MESSAGES[code])
        except (OSError, TypeError, ValueError) as e:
            self.logger.error(f"Could not save default locale file for '{code}': {e}")

