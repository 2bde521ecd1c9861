from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from ..store.types import PullResult, PushResult, SyncResult
from .context import SyncContext
from .migrator import migrate_once
from .pull import pull_server
from .push import push_outbox

logger = logging.getLogger(__name__)


def sync_all(ctx: SyncContext) -> SyncResult:
    """Run migrate, push and pull in order. Never raises.

    Pull runs even when push failed so records from other devices still
    arrive. A stage that raises is reported with ``error: True`` in its
    own result and in the summary.
    """

    error = False
    try:
        migrate_once(ctx.store)
    except Exception:
        logger.exception("legacy migration failed")
        error = True

    try:
        push: PushResult = push_outbox(ctx)
    except Exception:
        logger.exception("push stage failed")
        push = {"pushed": 0, "failed": 0, "error": True}
        error = True

    try:
        pull: PullResult = pull_server(ctx)
    except Exception:
        logger.exception("pull stage failed")
        pull = {"pulled": 0, "error": True}
        error = True

    result: SyncResult = {"push": push, "pull": pull, "error": error}
    _record_outcome(ctx, result)
    return result


def _record_outcome(ctx: SyncContext, result: SyncResult) -> None:
    summary: dict[str, Any] = {"push": dict(result["push"]), "pull": dict(result["pull"])}
    reason = result["pull"].get("reason")
    try:
        if result["error"] or reason == "pull-error":
            ctx.store.set_sync_error(reason or "sync stage raised", summary)
        elif reason == "no-session" and result["push"].get("reason") == "no-session":
            ctx.store.set_sync_skipped("no-session", summary)
        else:
            ctx.store.set_sync_ok(summary)
    except Exception as exc:
        logger.warning("failed to record sync state", exc_info=exc)


class SyncRunner:
    """Single-flight wrapper around :func:`sync_all`.

    A request that arrives while a pass is running is coalesced into one
    follow-up pass, started by the thread that owns the running pass.
    """

    def __init__(self, ctx: SyncContext, *, sync: Callable[[SyncContext], SyncResult] = sync_all):
        self.ctx = ctx
        self._sync = sync
        self._lock = threading.Lock()
        self._running = False
        self._pending = False
        self.last_result: SyncResult | None = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def request(self) -> SyncResult | None:
        """Run a pass now, or queue one behind the pass in flight.

        Returns the result of the last pass this call ran, or None when the
        request was handed to a pass already running.
        """

        with self._lock:
            if self._running:
                self._pending = True
                return None
            self._running = True
        try:
            while True:
                result = self._sync(self.ctx)
                self.last_result = result
                with self._lock:
                    if not self._pending:
                        self._running = False
                        return result
                    self._pending = False
        except BaseException:
            with self._lock:
                self._running = False
                self._pending = False
            raise

    def request_in_background(self) -> threading.Thread:
        thread = threading.Thread(target=self.request, name="scansync-sync", daemon=True)
        thread.start()
        return thread
