from __future__ import annotations

from typing import Any, Literal, TypedDict

ScanKind = Literal["qrcode", "barcode"]

SCAN_KINDS: tuple[str, ...] = ("qrcode", "barcode")


class ScanRecord(TypedDict):
    localId: str
    serverId: str | None
    idempotencyToken: str
    userId: str | None
    tenantId: str | None
    createdAt: str
    kind: ScanKind
    payload: str
    metadata: dict[str, Any] | None
    synced: bool


class PushResult(TypedDict, total=False):
    pushed: int
    failed: int
    reason: str
    error: bool


class PullResult(TypedDict, total=False):
    pulled: int
    reason: str
    error: bool


class SyncResult(TypedDict):
    push: PushResult
    pull: PullResult
    error: bool
