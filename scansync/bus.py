from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]

HISTORY_CHANGED = "history:changed"


class EventBus:
    def __init__(self) -> None:
        self._listeners: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(event, []).append(handler)

        def _off() -> None:
            with self._lock:
                handlers = self._listeners.get(event)
                if handlers and handler in handlers:
                    handlers.remove(handler)

        return _off

    def emit(self, event: str, payload: Any = None) -> None:
        with self._lock:
            handlers = list(self._listeners.get(event, ()))
        for handler in handlers:
            try:
                handler(payload)
            except Exception as exc:
                logger.warning("event handler failed for %s", event, exc_info=exc)
