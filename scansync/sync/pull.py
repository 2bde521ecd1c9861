from __future__ import annotations

import datetime as dt
import logging

from ..errors import NoSession, TenantUnresolved
from ..session import Session
from ..store.types import PullResult, ScanRecord
from ..store.utils import EPOCH_ISO
from .context import SyncContext
from .remote import row_to_record

logger = logging.getLogger(__name__)


def _owner_scope(ctx: SyncContext, session: Session) -> tuple[str | None, str]:
    """Return ``(tenant_id, scope)`` for the pull query.

    The tenant is resolved up front, the same way push does, so pulls see the
    whole tenant from the first pass. Only a user with no membership at all
    falls back to pulling their own rows.
    """

    try:
        tenant_id = ctx.tenants.resolve(session, session.user_id)
    except TenantUnresolved:
        return None, f"user:{session.user_id}"
    return tenant_id, f"tenant:{tenant_id}"


def pull_server(ctx: SyncContext) -> PullResult:
    """Fetch rows created since the watermark and merge them into History.

    The watermark moves to ``now - pull_overlap_s`` rather than to the newest
    ``created_at`` seen, so the next pull re-reads a short window and the
    merge drops what it already has. It never moves backwards and is left
    alone when the query fails.

    The watermark only bounds rows visible under the owner filter it was
    reached with. When that filter changes (a tenant shows up for a user who
    had none) the query starts from epoch once so older tenant rows arrive.
    """

    try:
        session = ctx.require_session()
    except NoSession:
        return {"pulled": 0, "reason": "no-session"}

    try:
        tenant_id, scope = _owner_scope(ctx, session)
    except Exception as exc:
        logger.warning("pull tenant lookup failed", exc_info=exc)
        return {"pulled": 0, "reason": "pull-error"}

    since = ctx.store.last_pulled_at()
    previous_scope = ctx.store.pull_scope()
    if previous_scope is not None and previous_scope != scope:
        logger.info("pull scope changed from %s to %s; refetching from epoch", previous_scope, scope)
        since = EPOCH_ISO

    started_at = dt.datetime.now(dt.UTC)
    try:
        rows = ctx.remote.query_since(session, since, tenant_id=tenant_id)
    except Exception as exc:
        logger.warning("pull since %s failed", since, exc_info=exc)
        return {"pulled": 0, "reason": "pull-error"}

    records: list[ScanRecord] = []
    for row in rows:
        record = row_to_record(row)
        if record is None:
            logger.warning("skipping remote row without id")
            continue
        records.append(record)

    added = ctx.store.merge_remote(records)
    overlap = dt.timedelta(seconds=max(ctx.pull_overlap_s, 0))
    ctx.store.advance_last_pulled_at((started_at - overlap).isoformat())
    if previous_scope != scope:
        ctx.store.set_pull_scope(scope)
    return {"pulled": added}
