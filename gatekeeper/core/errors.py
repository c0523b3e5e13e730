from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from gatekeeper.core.audit import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class GatekeeperError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


class ConfigError(GatekeeperError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class PersistenceError(GatekeeperError):
    def __init__(self, user_message: str = "Whitelist storage error.", **ctx: Any):
        super().__init__("persistence_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class ValidationError(GatekeeperError):
    def __init__(self, user_message: str = "Invalid request.", **ctx: Any):
        super().__init__("validation_error", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class PermissionDeniedError(GatekeeperError):
    def __init__(self, user_message: str = "Permission denied.", **ctx: Any):
        super().__init__("permission_denied", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class AuthenticationError(GatekeeperError):
    def __init__(self, user_message: str = "Missing or invalid API key.", **ctx: Any):
        super().__init__("auth_required", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class NotFoundError(GatekeeperError):
    def __init__(self, user_message: str = "Not found.", **ctx: Any):
        super().__init__("not_found", user_message, severity=Severity.INFO, recoverable=False, context=ctx)
