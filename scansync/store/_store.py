from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any, cast
from uuid import uuid4

from .. import db
from ..bus import HISTORY_CHANGED, EventBus
from ..kv import KeyValueStore
from . import utils as store_utils
from .types import SCAN_KINDS, ScanKind, ScanRecord

logger = logging.getLogger(__name__)


class ScanStore:
    """History, Outbox and sync bookkeeping on top of a key-value store.

    Every read-modify-write of a persisted list happens under ``self._lock``
    against the latest stored value, so a record captured while a sync pass
    is running is merged rather than overwritten.
    """

    K_HISTORY = "history:v1"
    K_OUTBOX = "outbox:v1"
    K_LAST_PULLED_AT = "lastPulledAt:v1"
    K_PULL_SCOPE = "pullScope:v1"
    K_LEGACY_CLEANED = "SYNC_CLEANED_v1"
    K_TENANT_ID = "tenantId"
    K_SYNC_STATE = "syncState:v1"

    LEGACY_KEYS = ("PENDING_QUEUE", "SYNC_LOCK", "SYNC_IN_PROGRESS", "SYNC_QUARANTINE_LAST")

    def __init__(self, kv: KeyValueStore, *, bus: EventBus | None = None):
        self.kv = kv
        self.bus = bus or EventBus()
        self._lock = threading.RLock()

    def close(self) -> None:
        close = getattr(self.kv, "close", None)
        if callable(close):
            close()

    def _read_json(self, key: str, fallback: Any) -> Any:
        value = db.from_json(self.kv.get(key), fallback)
        if fallback is not None and not isinstance(value, type(fallback)):
            logger.warning("ignoring malformed value under %s", key)
            return fallback
        return value

    def _write_json(self, key: str, value: Any) -> None:
        self.kv.set(key, db.to_json(value))

    def history(self) -> list[ScanRecord]:
        return cast(list[ScanRecord], self._read_json(self.K_HISTORY, []))

    def outbox(self) -> list[ScanRecord]:
        return cast(list[ScanRecord], self._read_json(self.K_OUTBOX, []))

    def _write_history(self, history: list[ScanRecord]) -> None:
        self._write_json(self.K_HISTORY, history)
        self.bus.emit(HISTORY_CHANGED, {"count": len(history)})

    def on_history_change(self, handler: Callable[[Any], None]) -> Callable[[], None]:
        return self.bus.on(HISTORY_CHANGED, handler)

    def record_scan(
        self,
        payload: str,
        *,
        kind: str = "barcode",
        metadata: dict[str, Any] | None = None,
        user_id: str | None = None,
        tenant_id: str | None = None,
    ) -> ScanRecord:
        if kind not in SCAN_KINDS:
            raise ValueError(f"unknown scan kind: {kind}")
        record: ScanRecord = {
            "localId": uuid4().hex,
            "serverId": None,
            "idempotencyToken": str(uuid4()),
            "userId": user_id,
            "tenantId": tenant_id,
            "createdAt": store_utils.now_iso(),
            "kind": cast(ScanKind, kind),
            "payload": payload,
            "metadata": dict(metadata) if metadata else None,
            "synced": False,
        }
        with self._lock:
            outbox = self.outbox()
            outbox.append(record)
            self._write_json(self.K_OUTBOX, outbox)
            history = self.history()
            history.insert(0, dict(record))  # type: ignore[arg-type]
            self._write_history(history)
        return record

    def remove_from_outbox(self, idempotency_token: str) -> bool:
        with self._lock:
            outbox = self.outbox()
            remaining = [item for item in outbox if item.get("idempotencyToken") != idempotency_token]
            if len(remaining) == len(outbox):
                return False
            self._write_json(self.K_OUTBOX, remaining)
            return True

    def mark_synced(
        self,
        record: ScanRecord,
        *,
        user_id: str | None,
        tenant_id: str | None = None,
        server_id: str | None = None,
    ) -> bool:
        """Flag the History entry for ``record`` as confirmed remotely."""

        with self._lock:
            history = self.history()
            idx = _find_index(history, "localId", record.get("localId"))
            if idx is None:
                idx = _find_index(history, "idempotencyToken", record.get("idempotencyToken"))
            if idx is None:
                return False
            entry = history[idx]
            entry["synced"] = True
            if user_id:
                entry["userId"] = user_id
            if tenant_id and not entry.get("tenantId"):
                entry["tenantId"] = tenant_id
            if server_id and not entry.get("serverId"):
                if _find_index(history, "serverId", server_id) is None:
                    entry["serverId"] = server_id
            self._write_history(history)
            return True

    def merge_remote(self, records: Iterable[ScanRecord]) -> int:
        """Merge pulled records into History; returns the number of new entries.

        Matching is by ``serverId`` first, then by idempotency token so a
        pushed local record picks up its server id instead of being copied.
        History is re-sorted newest first and persisted even when nothing new
        arrived.
        """

        with self._lock:
            history = self.history()
            by_server_id = {str(h["serverId"]): h for h in history if h.get("serverId")}
            by_token = {
                str(h["idempotencyToken"]): h for h in history if h.get("idempotencyToken")
            }
            added = 0
            for record in records:
                server_id = record.get("serverId")
                if not server_id or server_id in by_server_id:
                    continue
                local = by_token.get(record["idempotencyToken"])
                if local is not None and not local.get("serverId"):
                    local["serverId"] = server_id
                    local["synced"] = True
                    by_server_id[server_id] = local
                    continue
                entry = dict(record)
                history.append(entry)  # type: ignore[arg-type]
                by_server_id[server_id] = entry  # type: ignore[assignment]
                by_token.setdefault(record["idempotencyToken"], entry)  # type: ignore[arg-type]
                added += 1
            history.sort(key=lambda h: store_utils.sort_key(str(h.get("createdAt") or "")), reverse=True)
            self._write_history(history)
        return added

    def last_pulled_at(self) -> str:
        return self.kv.get(self.K_LAST_PULLED_AT) or store_utils.EPOCH_ISO

    def advance_last_pulled_at(self, candidate: str) -> str:
        with self._lock:
            current = self.kv.get(self.K_LAST_PULLED_AT)
            value = store_utils.later_of(current, candidate)
            if value != current:
                self.kv.set(self.K_LAST_PULLED_AT, value)
            return value

    def pull_scope(self) -> str | None:
        """Owner filter the stored watermark was reached under, if known."""

        return self.kv.get(self.K_PULL_SCOPE) or None

    def set_pull_scope(self, scope: str) -> None:
        self.kv.set(self.K_PULL_SCOPE, scope)

    def legacy_cleaned(self) -> bool:
        return bool(self.kv.get(self.K_LEGACY_CLEANED))

    def set_legacy_cleaned(self) -> None:
        self.kv.set(self.K_LEGACY_CLEANED, "1")

    def cached_tenant_id(self) -> str | None:
        return self.kv.get(self.K_TENANT_ID) or None

    def set_cached_tenant_id(self, tenant_id: str) -> None:
        self.kv.set(self.K_TENANT_ID, tenant_id)

    def get_sync_state(self) -> dict[str, Any]:
        return cast(dict[str, Any], self._read_json(self.K_SYNC_STATE, {}))

    def set_sync_ok(self, summary: dict[str, Any]) -> None:
        with self._lock:
            state = self.get_sync_state()
            state["last_ok_at"] = store_utils.now_iso()
            state["last_result"] = summary
            self._write_json(self.K_SYNC_STATE, state)

    def set_sync_error(self, error: str, summary: dict[str, Any] | None = None) -> None:
        with self._lock:
            state = self.get_sync_state()
            state["last_error"] = error
            state["last_error_at"] = store_utils.now_iso()
            if summary is not None:
                state["last_result"] = summary
            self._write_json(self.K_SYNC_STATE, state)

    def set_sync_skipped(self, reason: str, summary: dict[str, Any]) -> None:
        """Record a pass that did no remote work; ``last_ok_at`` is left alone."""

        with self._lock:
            state = self.get_sync_state()
            state["last_skipped"] = reason
            state["last_skipped_at"] = store_utils.now_iso()
            state["last_result"] = summary
            self._write_json(self.K_SYNC_STATE, state)


def _find_index(history: list[ScanRecord], field: str, value: object) -> int | None:
    if not value:
        return None
    for idx, entry in enumerate(history):
        if entry.get(field) == value:
            return idx
    return None
