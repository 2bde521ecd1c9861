from __future__ import annotations

import logging

from ..store import ScanStore

logger = logging.getLogger(__name__)


def migrate_once(store: ScanStore) -> bool:
    """Delete keys left by the retired queue-based sync, once per installation.

    Returns True when the cleanup ran on this call. A failed delete leaves
    the flag unset so the next pass tries again.
    """

    if store.legacy_cleaned():
        return False
    try:
        store.kv.delete(list(store.LEGACY_KEYS))
    except Exception as exc:
        logger.warning("legacy artifact cleanup failed", exc_info=exc)
        return False
    store.set_legacy_cleaned()
    logger.info("sync artifacts cleared")
    return True
