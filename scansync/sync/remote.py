from __future__ import annotations

import re
from typing import Any, Protocol, cast
from urllib.parse import urlencode

from ..errors import DuplicateKey, PullError, RemoteError, TransportError
from ..session import Session
from ..store.types import SCAN_KINDS, ScanKind, ScanRecord
from ..store.utils import normalize_iso8601
from . import http_client

UNIQUE_VIOLATION = "23505"
_DUPLICATE_RE = re.compile(r"duplicate key", re.IGNORECASE)

ROLE_PRIORITY = {"owner": 3, "admin": 2, "member": 1}

PULL_COLUMNS = "id,user_id,tenant_id,created_at,type,value,meta,client_ref"


class RemoteRecordStore(Protocol):
    def insert(self, session: Session, row: dict[str, Any]) -> str | None:
        """Insert ``row``; return the server id when the remote reports one."""

    def query_since(
        self,
        session: Session,
        since: str,
        *,
        tenant_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Rows with ``created_at >= since``, newest first."""


class MembershipResolver(Protocol):
    def first_tenant_for(self, session: Session, user_id: str) -> str | None: ...


def is_duplicate_error(code: object, message: object) -> bool:
    if str(code or "") == UNIQUE_VIOLATION:
        return True
    return bool(_DUPLICATE_RE.search(str(message or "")))


def record_to_row(record: ScanRecord, *, user_id: str, tenant_id: str | None) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "tenant_id": tenant_id,
        "created_at": record["createdAt"],
        "type": record["kind"],
        "value": record["payload"],
        "client_ref": record["idempotencyToken"],
        "meta": record.get("metadata"),
    }


def row_to_record(row: dict[str, Any]) -> ScanRecord | None:
    raw_id = row.get("id")
    if raw_id is None or str(raw_id).strip() == "":
        return None
    server_id = str(raw_id)
    derived = f"srv-{server_id}"
    kind = str(row.get("type") or "")
    created_at = str(row.get("created_at") or "")
    meta = row.get("meta")
    return {
        "localId": derived,
        "serverId": server_id,
        "idempotencyToken": str(row.get("client_ref") or derived),
        "userId": _optional_str(row.get("user_id")),
        "tenantId": _optional_str(row.get("tenant_id")),
        "createdAt": normalize_iso8601(created_at) or created_at,
        "kind": cast(ScanKind, kind if kind in SCAN_KINDS else "barcode"),
        "payload": str(row.get("value") or ""),
        "metadata": meta if isinstance(meta, dict) else None,
        "synced": True,
    }


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def _error_fields(payload: Any) -> tuple[str | None, str]:
    if isinstance(payload, dict):
        code = payload.get("code")
        message = payload.get("message") or payload.get("error") or payload.get("details") or ""
        return (str(code) if code is not None else None), str(message)
    return None, ""


class PostgrestClient:
    """Minimal PostgREST client for the records and memberships tables."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        records_table: str = "scans",
        memberships_table: str = "memberships",
        timeout_s: float = 10.0,
    ):
        self.base_url = http_client.build_base_url(base_url)
        if not self.base_url:
            raise ValueError("remote url is required")
        self.api_key = api_key
        self.records_table = records_table
        self.memberships_table = memberships_table
        self.timeout_s = timeout_s

    def _headers(self, session: Session, *, prefer: str | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {session.access_token}"}
        if self.api_key:
            headers["apikey"] = self.api_key
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _table_url(self, table: str, query: dict[str, str] | None = None) -> str:
        url = f"{self.base_url}/rest/v1/{table}"
        if query:
            url = f"{url}?{urlencode(query)}"
        return url

    def _raise_for_status(self, status: int, payload: Any, *, duplicate_ok: bool = False) -> None:
        if 200 <= status < 300:
            return
        code, message = _error_fields(payload)
        if duplicate_ok and is_duplicate_error(code, message):
            raise DuplicateKey(code, message, status=status)
        if status >= 500 or status == 429:
            raise TransportError(f"remote unavailable ({status}: {message or 'no detail'})")
        raise RemoteError(code, message or f"http {status}", status=status)

    def insert(self, session: Session, row: dict[str, Any]) -> str | None:
        status, payload = http_client.request_json(
            "POST",
            self._table_url(self.records_table, {"select": "id"}),
            headers=self._headers(session, prefer="return=representation"),
            body=row,
            timeout_s=self.timeout_s,
        )
        self._raise_for_status(status, payload, duplicate_ok=True)
        if isinstance(payload, list) and payload and isinstance(payload[0], dict):
            server_id = payload[0].get("id")
            return str(server_id) if server_id is not None else None
        return None

    def query_since(
        self,
        session: Session,
        since: str,
        *,
        tenant_id: str | None = None,
    ) -> list[dict[str, Any]]:
        query = {
            "select": PULL_COLUMNS,
            "created_at": f"gte.{since}",
            "order": "created_at.desc",
        }
        if tenant_id:
            query["tenant_id"] = f"eq.{tenant_id}"
        else:
            query["user_id"] = f"eq.{session.user_id}"
        status, payload = http_client.request_json(
            "GET",
            self._table_url(self.records_table, query),
            headers=self._headers(session),
            timeout_s=self.timeout_s,
        )
        self._raise_for_status(status, payload)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise PullError("invalid query response")
        return [row for row in payload if isinstance(row, dict)]

    def first_tenant_for(self, session: Session, user_id: str) -> str | None:
        status, payload = http_client.request_json(
            "GET",
            self._table_url(
                self.memberships_table,
                {"select": "tenant_id,role", "user_id": f"eq.{user_id}"},
            ),
            headers=self._headers(session),
            timeout_s=self.timeout_s,
        )
        self._raise_for_status(status, payload)
        if not isinstance(payload, list):
            return None
        return pick_tenant(payload)


def pick_tenant(memberships: list[Any]) -> str | None:
    """Choose the highest-role membership; ties keep the remote's order."""

    candidates = [m for m in memberships if isinstance(m, dict) and m.get("tenant_id")]
    if not candidates:
        return None
    candidates.sort(key=lambda m: ROLE_PRIORITY.get(str(m.get("role") or ""), 0), reverse=True)
    return str(candidates[0]["tenant_id"])
