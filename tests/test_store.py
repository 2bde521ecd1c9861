from __future__ import annotations

import threading
from pathlib import Path

import pytest

from scansync.kv import MemoryKeyValueStore, SqliteKeyValueStore
from scansync.store import ScanStore


def _remote_record(server_id: str, created_at: str, token: str | None = None) -> dict:
    return {
        "localId": f"srv-{server_id}",
        "serverId": server_id,
        "idempotencyToken": token or f"srv-{server_id}",
        "userId": "user-2",
        "tenantId": "tenant-1",
        "createdAt": created_at,
        "kind": "barcode",
        "payload": f"payload-{server_id}",
        "metadata": None,
        "synced": True,
    }


def test_record_scan_queues_and_prepends_history(store: ScanStore) -> None:
    first = store.record_scan("one", kind="qrcode", metadata={"lot": 7})
    second = store.record_scan("two")

    assert [item["localId"] for item in store.outbox()] == [first["localId"], second["localId"]]
    assert [item["localId"] for item in store.history()] == [second["localId"], first["localId"]]
    assert first["synced"] is False
    assert first["serverId"] is None
    assert first["metadata"] == {"lot": 7}
    assert first["idempotencyToken"] != second["idempotencyToken"]


def test_record_scan_rejects_unknown_kind(store: ScanStore) -> None:
    with pytest.raises(ValueError, match="unknown scan kind"):
        store.record_scan("x", kind="nfc")
    assert store.outbox() == []


def test_concurrent_captures_are_not_lost(store: ScanStore) -> None:
    def _capture(prefix: str) -> None:
        for idx in range(25):
            store.record_scan(f"{prefix}-{idx}")

    threads = [threading.Thread(target=_capture, args=(name,)) for name in ("a", "b", "c")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(store.outbox()) == 75
    assert len(store.history()) == 75


def test_merge_remote_dedupes_by_server_id(store: ScanStore) -> None:
    rows = [
        _remote_record("2", "2025-01-02T00:00:00+00:00"),
        _remote_record("1", "2025-01-01T00:00:00+00:00"),
    ]

    assert store.merge_remote(rows) == 2
    assert store.merge_remote(rows) == 0
    assert store.merge_remote([rows[0], rows[0]]) == 0

    server_ids = [h["serverId"] for h in store.history()]
    assert server_ids == ["2", "1"]


def test_merge_remote_sorts_newest_first_across_origins(store: ScanStore) -> None:
    local = store.record_scan("local")
    store.merge_remote(
        [
            _remote_record("9", "2999-01-01T00:00:00Z"),
            _remote_record("8", "2000-01-01T00:00:00+00:00"),
        ]
    )

    assert [h["localId"] for h in store.history()] == ["srv-9", local["localId"], "srv-8"]


def test_merge_remote_attaches_server_id_to_local_entry(store: ScanStore) -> None:
    local = store.record_scan("x")

    added = store.merge_remote([_remote_record("5", local["createdAt"], local["idempotencyToken"])])

    assert added == 0
    history = store.history()
    assert len(history) == 1
    assert history[0]["serverId"] == "5"
    assert history[0]["synced"] is True


def test_advance_last_pulled_at_is_monotonic(store: ScanStore) -> None:
    assert store.advance_last_pulled_at("2025-01-02T00:00:00+00:00") == "2025-01-02T00:00:00+00:00"
    assert store.advance_last_pulled_at("2025-01-01T00:00:00+00:00") == "2025-01-02T00:00:00+00:00"
    assert store.last_pulled_at() == "2025-01-02T00:00:00+00:00"
    assert store.advance_last_pulled_at("2025-01-03T00:00:00Z") == "2025-01-03T00:00:00Z"


def test_history_change_event(store: ScanStore) -> None:
    events: list[dict] = []
    off = store.on_history_change(events.append)

    store.record_scan("x")
    store.merge_remote([_remote_record("1", "2025-01-01T00:00:00+00:00")])
    off()
    store.record_scan("y")

    assert events == [{"count": 1}, {"count": 2}]


def test_failing_listener_does_not_block_mutation(store: ScanStore) -> None:
    def _boom(_payload) -> None:
        raise RuntimeError("listener broke")

    store.on_history_change(_boom)
    store.record_scan("x")

    assert len(store.history()) == 1


def test_malformed_blob_reads_as_empty() -> None:
    store = ScanStore(MemoryKeyValueStore({"history:v1": "{not json", "outbox:v1": '{"a": 1}'}))

    assert store.history() == []
    assert store.outbox() == []


def test_state_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "state.sqlite"
    store = ScanStore(SqliteKeyValueStore(path))
    record = store.record_scan("persisted")
    store.set_legacy_cleaned()
    store.close()

    reopened = ScanStore(SqliteKeyValueStore(path))
    try:
        assert reopened.outbox()[0]["localId"] == record["localId"]
        assert reopened.history()[0]["payload"] == "persisted"
        assert reopened.legacy_cleaned() is True
    finally:
        reopened.close()


def test_sync_state_tracks_ok_and_error(store: ScanStore) -> None:
    store.set_sync_error("pull-error", {"pull": {"pulled": 0}})
    store.set_sync_ok({"push": {"pushed": 1}})

    state = store.get_sync_state()
    assert state["last_error"] == "pull-error"
    assert state["last_ok_at"]
    assert state["last_result"] == {"push": {"pushed": 1}}
