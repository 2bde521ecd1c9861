from __future__ import annotations

import datetime as dt
import logging
import threading
import traceback
from pathlib import Path

from .orchestrator import SyncRunner
from .triggers import ConnectivityWatcher, SyncListeners

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".scansync"


def run_sync_daemon(
    runner: SyncRunner,
    interval_s: int,
    *,
    watcher: ConnectivityWatcher | None = None,
    stop_event: threading.Event | None = None,
    log_dir: Path | None = None,
) -> None:
    detach = None
    if watcher is not None:
        detach = SyncListeners(runner).attach(watcher)
    stop = stop_event or threading.Event()
    try:
        _tick(runner, log_dir)
        while not stop.wait(interval_s):
            _tick(runner, log_dir)
    finally:
        if detach is not None:
            detach()


def _tick(runner: SyncRunner, log_dir: Path | None) -> None:
    try:
        result = runner.request()
    except Exception:
        tb = traceback.format_exc()
        logger.error("sync daemon tick failed")
        _append_sync_daemon_log(tb, log_dir=log_dir)
        return
    if result is not None and result["error"]:
        _append_sync_daemon_log(f"sync pass reported errors: {result}", log_dir=log_dir)


def _append_sync_daemon_log(message: str, *, log_dir: Path | None = None) -> None:
    try:
        target = log_dir or DEFAULT_LOG_DIR
        target.mkdir(parents=True, exist_ok=True)
        log_path = target / "sync-daemon.log"
        ts = dt.datetime.now(dt.UTC).isoformat()
        with log_path.open("a", encoding="utf-8", errors="ignore") as handle:
            handle.write(f"\n[{ts}]\n{message}\n")
    except OSError:
        return
