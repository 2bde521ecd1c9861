from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Callable
from urllib.parse import urlparse

from .orchestrator import SyncRunner

logger = logging.getLogger(__name__)

FOREGROUND_STATE = "active"


def tcp_probe(host: str, port: int, *, timeout_s: float = 3.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout_s):
            return True
    except OSError:
        return False


def probe_for_url(url: str, *, timeout_s: float = 3.0) -> Callable[[], bool]:
    parsed = urlparse(url if "://" in url else f"https://{url}")
    host = parsed.hostname or ""
    port = parsed.port or (80 if parsed.scheme == "http" else 443)

    def _probe() -> bool:
        if not host:
            return False
        return tcp_probe(host, port, timeout_s=timeout_s)

    return _probe


class ConnectivityWatcher:
    """Poll reachability and report transitions to the callback."""

    def __init__(
        self,
        probe: Callable[[], bool],
        *,
        interval_s: float = 15.0,
    ):
        self.probe = probe
        self.interval_s = interval_s
        self.connected: bool | None = None
        self._callbacks: list[Callable[[bool], None]] = []
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def check(self) -> bool:
        try:
            connected = bool(self.probe())
        except Exception as exc:
            logger.debug("connectivity probe failed", exc_info=exc)
            connected = False
        changed = connected != self.connected
        self.connected = connected
        if changed:
            for callback in list(self._callbacks):
                try:
                    callback(connected)
                except Exception as exc:
                    logger.warning("connectivity callback failed", exc_info=exc)
        return connected

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="scansync-netwatch", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval_s + 1)
            self._thread = None

    def _run(self) -> None:
        self.check()
        while not self._stop.wait(self.interval_s):
            self.check()


class SyncListeners:
    """Turn network and foreground transitions into sync requests."""

    def __init__(self, runner: SyncRunner, *, background: bool = True):
        self.runner = runner
        self.background = background

    def _trigger(self) -> None:
        if self.background:
            self.runner.request_in_background()
        else:
            self.runner.request()

    def on_network_change(self, connected: bool) -> None:
        if connected:
            self._trigger()

    def on_app_state(self, state: str) -> None:
        if state == FOREGROUND_STATE:
            self._trigger()

    def attach(self, watcher: ConnectivityWatcher) -> Callable[[], None]:
        unsubscribe = watcher.subscribe(self.on_network_change)
        watcher.start()

        def _detach() -> None:
            unsubscribe()
            watcher.stop()

        return _detach
