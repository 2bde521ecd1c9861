from __future__ import annotations

import logging

from ..errors import TenantUnresolved
from ..session import Session
from ..store import ScanStore
from .remote import MembershipResolver

logger = logging.getLogger(__name__)


class TenantResolver:
    """Resolve the tenant a record is pushed under.

    Order: the tenant pinned in config, then the tenant cached from an
    earlier lookup, then the remote membership table. A lookup result is
    cached so one sync pass costs at most one membership query.
    """

    def __init__(
        self,
        store: ScanStore,
        memberships: MembershipResolver,
        *,
        pinned_tenant_id: str | None = None,
    ):
        self.store = store
        self.memberships = memberships
        self.pinned_tenant_id = pinned_tenant_id

    def resolve(self, session: Session, user_id: str) -> str:
        if self.pinned_tenant_id:
            return self.pinned_tenant_id
        cached = self.store.cached_tenant_id()
        if cached:
            return cached
        tenant_id = self.memberships.first_tenant_for(session, user_id)
        if not tenant_id:
            raise TenantUnresolved(user_id)
        self.store.set_cached_tenant_id(tenant_id)
        logger.info("resolved tenant %s for user %s", tenant_id, user_id)
        return tenant_id
