"""Custom exception hierarchy for armysync."""

from __future__ import annotations


class ArmySyncError(Exception):
    """Base exception for all armysync errors."""


class ArmySyncConfigError(ArmySyncError):
    """Invalid or missing configuration."""


class SyncDisabledError(ArmySyncError):
    """Operation needs an active identity but synchronization is disabled."""


class LocalStorageError(ArmySyncError):
    """Raw local store failure (write rejected, backend unavailable)."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class LocalStorageQuotaError(LocalStorageError):
    """Write rejected because the storage area would exceed its quota."""


class LocalDataError(LocalStorageError):
    """A local category value could not be parsed as JSON.

    Record stores treat unreadable data as "no data"; the sync service
    raises this instead so a corrupt category is never pushed as empty.
    """


class RemoteStoreError(ArmySyncError):
    """Remote document store failure."""


class RemoteTransportError(RemoteStoreError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str = "",
    ) -> None:
        self.status_code = status_code
        self.path = path
        super().__init__(message)


class RemotePermissionError(RemoteTransportError):
    """Remote store rejected the identity (HTTP 401/403).

    Usually means the identity token has expired; the caller should obtain
    a fresh token from its identity provider and retry.
    """
