from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WhitelistConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    enabled: bool = True
    case_sensitive: bool = False
    kick_on_revoke: bool = False
    sweep_interval_seconds: float = Field(default=5.0, gt=0, le=3600)
    whitelist_file: str = Field(default="whitelist.txt", min_length=1)
    backup_keep: int = Field(default=5, ge=0, le=200)


class MessagesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    locale: str = Field(default="en", min_length=1, max_length=16)
    use_client_locale: bool = False

    @field_validator("locale")
    @classmethod
    def _normalize_locale(cls, v: str) -> str:
        return v.strip().lower()


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    log_dir: str = "logs"
    level: str = "INFO"
    audit_file: str = "audit.jsonl"

    @field_validator("level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return v


class WebConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    enabled: bool = False
    bind_host: str = "127.0.0.1"
    port: int = Field(default=8085, ge=1, le=65535)
    # SHA-256 hex digests of accepted X-API-Key values.
    api_key_hashes: List[str] = Field(default_factory=list)

    @field_validator("api_key_hashes")
    @classmethod
    def _lower_hashes(cls, v: List[str]) -> List[str]:
        return [h.strip().lower() for h in v if h and h.strip()]


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    config_version: int = Field(default=1, ge=1)
    whitelist: WhitelistConfig = Field(default_factory=WhitelistConfig)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    web: WebConfig = Field(default_factory=WebConfig)
