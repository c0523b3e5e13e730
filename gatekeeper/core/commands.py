from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, FrozenSet, Iterable, List, Optional

from gatekeeper.core.duration import format_duration_compact, parse_duration
from gatekeeper.core.errors import PermissionDeniedError
from gatekeeper.core.logger import get_logger
from gatekeeper.core.whitelist.models import ExtendMode, ExtendStatus, PermanentPolicy, now_ms, validate_name


PERM_BASE = "gatekeeper."
PERM_BYPASS = PERM_BASE + "bypass"
PERM_ADD = PERM_BASE + "command.add"
PERM_REMOVE = PERM_BASE + "command.remove"
PERM_EXTEND = PERM_BASE + "command.extend"
PERM_LIST = PERM_BASE + "command.list"
PERM_RELOAD = PERM_BASE + "command.reload"

CONSOLE_NAME = "CONSOLE"


@dataclass(frozen=True)
class CommandSource:
    name: str = CONSOLE_NAME
    permissions: FrozenSet[str] = field(default_factory=frozenset)
    is_console: bool = True
    lang: Optional[str] = None

    @classmethod
    def console(cls) -> "CommandSource":
        return cls()

    @classmethod
    def player(cls, name: str, permissions: Iterable[str] = (), lang: Optional[str] = None) -> "CommandSource":
        return cls(name=name, permissions=frozenset(permissions), is_console=False, lang=lang)

    def has_permission(self, node: str) -> bool:
        if self.is_console:
            return True
        return node in self.permissions or "*" in self.permissions


def format_instant(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000.0).astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")


class WhitelistCommands:
    """
    Text front-end for `whitelist <subcommand> ...`.

    Returns the reply lines for the caller to deliver; console replies are
    written to the log as well. Every mutation goes through the store, and
    the affected player (if online) is told their new remaining time.
    """

    def __init__(
        self,
        *,
        store: Any,
        locale: Any,
        notifier: Any = None,
        reload: Optional[Callable[[], None]] = None,
        online: Optional[Callable[[], Iterable[str]]] = None,
        logger=None,
        now: Optional[Callable[[], float]] = None,
    ):
        self.store = store
        self.locale = locale
        self.notifier = notifier
        self.reload_hook = reload
        self.online = online
        self.logger = get_logger(logger)
        self._now = now

    def execute(self, source: CommandSource, line: str) -> List[str]:
        args = str(line or "").split()
        if not args:
            return self._reply(source, [self._msg(source, "help-message")])
        sub, rest = args[0].lower(), args[1:]
        handlers = {
            "add": self._add,
            "remove": self._remove,
            "extend": self._extend,
            "list": self._list,
            "reload": self._reload,
        }
        handler = handlers.get(sub)
        if handler is None:
            return self._reply(source, [self._msg(source, "unknown-subcommand", subcommand=sub)])
        try:
            out = handler(source, rest)
        except PermissionDeniedError as e:
            self.logger.info(f"{source.name} was denied {e.context.get('node')}")
            out = [self._msg(source, "no-permission")]
        return self._reply(source, out)

    # ---- subcommands ----
    def _add(self, source: CommandSource, args: List[str]) -> List[str]:
        self._require(source, PERM_ADD)
        if not args:
            return [self._msg(source, "usage-add")]
        player = args[0]
        if validate_name(player) is None:
            return [self._msg(source, "invalid-player", player=player)]

        if len(args) == 1:
            if not self.store.grant(player):
                return [self._msg(source, "player-already-exists", player=player)]
            self._notify(player)
            return [self._msg(source, "player-added", player=player)]

        duration_text = " ".join(args[1:])
        duration = parse_duration(duration_text)
        if duration is None:
            return [self._msg(source, "invalid-duration", duration=duration_text)]
        return self._grant_temporary(source, player, duration)

    def _remove(self, source: CommandSource, args: List[str]) -> List[str]:
        self._require(source, PERM_REMOVE)
        if not args:
            return [self._msg(source, "usage-remove")]
        player = args[0]
        if not source.is_console and source.name.casefold() == player.casefold():
            return [self._msg(source, "cannot-remove-self")]
        if not self.store.revoke(player):
            return [self._msg(source, "player-not-found", player=player)]
        self._notify(player)
        return [self._msg(source, "player-removed", player=player)]

    def _extend(self, source: CommandSource, args: List[str]) -> List[str]:
        self._require(source, PERM_EXTEND)
        if len(args) < 2 or len(args) > 3:
            return [self._msg(source, "usage-extend")]
        player, duration_text = args[0], args[1]
        if validate_name(player) is None:
            return [self._msg(source, "invalid-player", player=player)]
        duration = parse_duration(duration_text)
        if duration is None:
            return [self._msg(source, "invalid-duration", duration=duration_text)]

        mode = ExtendMode.AUTO
        if len(args) == 3:
            try:
                mode = ExtendMode(args[2].lower())
            except ValueError:
                return [self._msg(source, "usage-extend")]

        result = self.store.extend(player, duration, mode=mode, permanent_policy=PermanentPolicy.REPLACE)
        if result.status == ExtendStatus.NOT_FOUND:
            return self._grant_temporary(source, player, duration)
        if result.status == ExtendStatus.INVALID:
            return [self._msg(source, "invalid-player", player=player)]
        if result.status == ExtendStatus.REJECTED:
            return [self._msg(source, "player-extend-rejected", player=player)]
        if result.status == ExtendStatus.EXPIRED:
            expired = format_instant(int(result.previous.expires_at_ms or 0))
            return [
                self._msg(source, "extend-expired-title", player=player, expired=expired),
                self._msg(source, "extend-option-add", player=player, duration=duration_text),
                self._msg(source, "extend-option-replace", player=player, duration=duration_text),
            ]

        until = format_instant(int(result.grant.expires_at_ms or 0))
        self._notify(player)
        if mode == ExtendMode.REPLACE or result.previous.is_permanent:
            return [self._msg(source, "player-extended-replace", player=player, until=until)]
        return [self._msg(source, "player-extended-add", player=player, duration=format_duration_compact(duration), until=until)]

    def _list(self, source: CommandSource, args: List[str]) -> List[str]:
        self._require(source, PERM_LIST)
        players = self.store.list_active()
        if not players:
            return [self._msg(source, "list-empty")]
        return [self._msg(source, "list-header", count=len(players), players=", ".join(players))]

    def _reload(self, source: CommandSource, args: List[str]) -> List[str]:
        self._require(source, PERM_RELOAD)
        if self.reload_hook is not None:
            self.reload_hook()
        if self.online is not None:
            for name in list(self.online()):
                self._notify(name)
        return [self._msg(source, "reload-success")]

    # ---- helpers ----
    def _require(self, source: CommandSource, node: str) -> None:
        if not source.has_permission(node):
            raise PermissionDeniedError(node=node, source=source.name)

    def _grant_temporary(self, source: CommandSource, player: str, duration: timedelta) -> List[str]:
        if not self.store.grant(player, duration):
            return [self._msg(source, "player-already-exists", player=player)]
        until = format_instant(now_ms(self._now) + duration // timedelta(milliseconds=1))
        self._notify(player)
        return [self._msg(source, "player-added-temp", player=player, until=until)]

    def _notify(self, player: str) -> None:
        if self.notifier is not None:
            self.notifier.notify(player)

    def _msg(self, source: CommandSource, key: str, **placeholders: Any) -> str:
        return self.locale.render(key, source.lang, **placeholders)

    def _reply(self, source: CommandSource, lines: List[str]) -> List[str]:
        if source.is_console:
            for text in lines:
                self.logger.info(text)
        return lines
