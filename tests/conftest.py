from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from scansync.errors import DuplicateKey, TransportError
from scansync.kv import MemoryKeyValueStore
from scansync.session import Session, StaticSessionProvider
from scansync.store import ScanStore
from scansync.store.utils import parse_iso8601
from scansync.sync.context import SyncContext
from scansync.sync.tenant import TenantResolver


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SCANSYNC_CONFIG", str(tmp_path / "config.json"))
    for name in (
        "SCANSYNC_STATE_PATH",
        "SCANSYNC_REMOTE_URL",
        "SCANSYNC_ACCESS_TOKEN",
        "SCANSYNC_USER_ID",
        "SCANSYNC_TENANT_ID",
    ):
        monkeypatch.delenv(name, raising=False)


class FakeRemote:
    """In-memory records table with a unique constraint on client_ref.

    Queries apply the same owner filter as PostgREST: the tenant when one is
    passed, otherwise the session user.
    """

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self.next_id = 1
        self.insert_calls: list[dict[str, Any]] = []
        self.query_calls: list[str] = []
        self.query_owners: list[str] = []
        self.fail_tokens: set[str] = set()
        self.query_error: Exception | None = None

    def add_row(self, **row: Any) -> dict[str, Any]:
        row.setdefault("id", self.next_id)
        row.setdefault("user_id", "user-1")
        row.setdefault("tenant_id", "tenant-1")
        self.next_id = max(self.next_id, int(row["id"])) + 1
        row.setdefault("type", "barcode")
        row.setdefault("value", "")
        row.setdefault("meta", None)
        row.setdefault("client_ref", None)
        self.rows.append(row)
        return row

    def insert(self, session: Session, row: dict[str, Any]) -> str | None:
        self.insert_calls.append(dict(row))
        token = row["client_ref"]
        if token in self.fail_tokens:
            raise TransportError("connection reset")
        if any(existing.get("client_ref") == token for existing in self.rows):
            raise DuplicateKey("23505", 'duplicate key value violates unique constraint "scans_client_ref_key"')
        stored = self.add_row(**row)
        return str(stored["id"])

    def query_since(
        self,
        session: Session,
        since: str,
        *,
        tenant_id: str | None = None,
    ) -> list[dict[str, Any]]:
        self.query_calls.append(since)
        self.query_owners.append(f"tenant:{tenant_id}" if tenant_id else f"user:{session.user_id}")
        if self.query_error is not None:
            raise self.query_error
        floor = parse_iso8601(since)
        assert floor is not None
        matches = [
            dict(row)
            for row in self.rows
            if _visible(row, session, tenant_id)
            and (parse_iso8601(str(row["created_at"])) or floor) >= floor
        ]
        matches.sort(key=lambda row: parse_iso8601(str(row["created_at"])), reverse=True)
        return matches


def _visible(row: dict[str, Any], session: Session, tenant_id: str | None) -> bool:
    if tenant_id:
        return row.get("tenant_id") == tenant_id
    return row.get("user_id") == session.user_id


class FakeMemberships:
    def __init__(self, tenants: dict[str, str] | None = None) -> None:
        self.tenants = dict(tenants or {})
        self.calls: list[str] = []

    def first_tenant_for(self, session: Session, user_id: str) -> str | None:
        self.calls.append(user_id)
        return self.tenants.get(user_id)


@pytest.fixture
def session() -> Session:
    return Session(user_id="user-1", access_token="token-1")


@pytest.fixture
def store() -> ScanStore:
    return ScanStore(MemoryKeyValueStore())


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def memberships() -> FakeMemberships:
    return FakeMemberships({"user-1": "tenant-1"})


@pytest.fixture
def ctx(
    store: ScanStore,
    remote: FakeRemote,
    memberships: FakeMemberships,
    session: Session,
) -> SyncContext:
    return SyncContext(
        store=store,
        remote=remote,
        sessions=StaticSessionProvider(session),
        tenants=TenantResolver(store, memberships),
        pull_overlap_s=300,
    )
