from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..config import ScanSyncConfig
from ..errors import NoSession
from ..kv import SqliteKeyValueStore
from ..session import Session, SessionProvider, session_from_config
from ..store import ScanStore
from .remote import MembershipResolver, PostgrestClient, RemoteRecordStore
from .tenant import TenantResolver


@dataclass
class SyncContext:
    store: ScanStore
    remote: RemoteRecordStore
    sessions: SessionProvider
    tenants: TenantResolver
    pull_overlap_s: int = 300

    def require_session(self) -> Session:
        session = self.sessions.get_session()
        if session is None:
            raise NoSession()
        return session


def build_context(
    config: ScanSyncConfig,
    *,
    store: ScanStore | None = None,
    remote: RemoteRecordStore | None = None,
    memberships: MembershipResolver | None = None,
    sessions: SessionProvider | None = None,
) -> SyncContext:
    if store is None:
        store = ScanStore(SqliteKeyValueStore(Path(config.state_path).expanduser()))
    if remote is None or memberships is None:
        if not config.remote_url:
            raise ValueError("remote_url is not configured")
        client = PostgrestClient(
            config.remote_url,
            config.api_key,
            records_table=config.records_table,
            memberships_table=config.memberships_table,
            timeout_s=config.http_timeout_s,
        )
        remote = remote or client
        memberships = memberships or client
    return SyncContext(
        store=store,
        remote=remote,
        sessions=sessions or session_from_config(config),
        tenants=TenantResolver(store, memberships, pinned_tenant_id=config.tenant_id),
        pull_overlap_s=config.pull_overlap_s,
    )
