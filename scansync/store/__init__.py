from __future__ import annotations

from ._store import ScanStore
from .types import PullResult, PushResult, ScanKind, ScanRecord, SyncResult

__all__ = [
    "PullResult",
    "PushResult",
    "ScanKind",
    "ScanRecord",
    "ScanStore",
    "SyncResult",
]
