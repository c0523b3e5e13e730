"""
Whitelist state engine: grants, durable line-file storage, the concurrent
store and the expiry sweeper.
"""

from gatekeeper.core.whitelist.models import (
    ExtendMode,
    ExtendResult,
    ExtendStatus,
    Grant,
    PermanentPolicy,
    canonicalize,
)
from gatekeeper.core.whitelist.storage import FileWhitelistStorage
from gatekeeper.core.whitelist.store import GrantMap, WhitelistStore
from gatekeeper.core.whitelist.sweeper import ExpirySweeper

__all__ = [
    "ExpirySweeper",
    "ExtendMode",
    "ExtendResult",
    "ExtendStatus",
    "FileWhitelistStorage",
    "Grant",
    "GrantMap",
    "PermanentPolicy",
    "WhitelistStore",
    "canonicalize",
]
