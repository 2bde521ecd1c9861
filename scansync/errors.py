from __future__ import annotations


class SyncError(RuntimeError):
    """Base class for failures raised inside a sync pass."""


class NoSession(SyncError):
    def __init__(self, message: str = "no authenticated session") -> None:
        super().__init__(message)


class TransportError(SyncError):
    """Network-level failure; state is left unchanged and the call is retried later."""


class RemoteError(SyncError):
    def __init__(self, code: str | None, message: str, *, status: int | None = None) -> None:
        self.code = code
        self.message = message
        self.status = status
        detail = f"{code}: {message}" if code else message
        super().__init__(f"remote rejected request ({detail})")


class DuplicateKey(RemoteError):
    """Insert hit the idempotency-token uniqueness constraint; treated as success."""


class TenantUnresolved(SyncError):
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"no tenant membership for user {user_id}")


class PullError(SyncError):
    pass
