from __future__ import annotations

import logging

from ..errors import DuplicateKey, NoSession, SyncError
from ..store.types import PushResult
from .context import SyncContext
from .remote import record_to_row

logger = logging.getLogger(__name__)


def push_outbox(ctx: SyncContext) -> PushResult:
    """Deliver queued records oldest first.

    A record leaves the Outbox only after the remote accepted it or reported
    its idempotency token as already present. Any other failure keeps it
    queued untouched and the batch moves on.
    """

    try:
        session = ctx.require_session()
    except NoSession:
        return {"pushed": 0, "reason": "no-session"}
    user_id = session.user_id

    outbox = ctx.store.outbox()
    if not outbox:
        return {"pushed": 0, "failed": 0}

    pushed = 0
    failed = 0
    for item in outbox:
        token = item.get("idempotencyToken")
        if not token:
            logger.warning("outbox entry %s has no idempotency token", item.get("localId"))
            failed += 1
            continue
        server_id: str | None = None
        try:
            tenant_id = item.get("tenantId") or ctx.tenants.resolve(session, user_id)
            row = record_to_row(item, user_id=user_id, tenant_id=tenant_id)
            try:
                server_id = ctx.remote.insert(session, row)
            except DuplicateKey:
                logger.debug("record %s already on server", token)
        except SyncError as exc:
            logger.warning("push failed for %s: %s", token, exc)
            failed += 1
            continue
        except Exception as exc:
            logger.warning("push failed for %s", token, exc_info=exc)
            failed += 1
            continue

        ctx.store.mark_synced(item, user_id=user_id, tenant_id=tenant_id, server_id=server_id)
        ctx.store.remove_from_outbox(token)
        pushed += 1

    return {"pushed": pushed, "failed": failed}
