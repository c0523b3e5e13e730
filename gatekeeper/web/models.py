from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class GrantInfo(BaseModel):
    name: str
    permanent: bool
    expires_at_ms: Optional[int] = None
    expired: bool = False


class WhitelistResponse(BaseModel):
    count: int
    players: List[str]


class GrantRequest(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    duration: Optional[str] = Field(default=None, max_length=64)


class ExtendRequest(BaseModel):
    duration: str = Field(min_length=1, max_length=64)
    mode: Literal["auto", "add", "replace"] = "auto"
    permanent_policy: Literal["replace", "reject"] = "replace"


class MutationResponse(BaseModel):
    ok: bool
    status: str
    grant: Optional[GrantInfo] = None


class AdmissionResponse(BaseModel):
    name: str
    allowed: bool
    reason: str
    kick_message: Optional[str] = None
