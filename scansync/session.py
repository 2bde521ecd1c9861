from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from .config import ScanSyncConfig


@dataclass(frozen=True)
class Session:
    user_id: str
    access_token: str


class SessionProvider(Protocol):
    def get_session(self) -> Session | None: ...


class StaticSessionProvider:
    def __init__(self, session: Session | None = None):
        self.session = session

    def get_session(self) -> Session | None:
        return self.session


def session_from_config(config: ScanSyncConfig) -> StaticSessionProvider:
    if config.user_id and config.access_token:
        return StaticSessionProvider(Session(user_id=config.user_id, access_token=config.access_token))
    return StaticSessionProvider(None)
