"""armysync - local-to-remote synchronization for army lists, custom units and detachments."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("armysync")
except PackageNotFoundError:
    __version__ = "0+local"
from armysync.config import SyncConfig
from armysync.exceptions import (
    ArmySyncConfigError,
    ArmySyncError,
    LocalDataError,
    LocalStorageError,
    LocalStorageQuotaError,
    RemotePermissionError,
    RemoteStoreError,
    RemoteTransportError,
    SyncDisabledError,
)
from armysync.local import (
    ArmyListStore,
    Category,
    ChangeEmitter,
    ChangeTopic,
    CustomDetachmentStore,
    CustomUnitStore,
    FileStorageArea,
    LocalStorage,
    StorageArea,
)
from armysync.remote import FirestoreRemoteStore, MemoryRemoteStore, SyncedData
from armysync.session import Identity, SyncSession
from armysync.sync import (
    ChangeDetector,
    DebounceScheduler,
    IntervalScheduler,
    SyncManager,
    SyncService,
    SyncStatus,
)

__all__ = [
    "__version__",
    "ArmyListStore",
    "ArmySyncConfigError",
    "ArmySyncError",
    "Category",
    "ChangeDetector",
    "ChangeEmitter",
    "ChangeTopic",
    "CustomDetachmentStore",
    "CustomUnitStore",
    "DebounceScheduler",
    "FileStorageArea",
    "FirestoreRemoteStore",
    "Identity",
    "IntervalScheduler",
    "LocalDataError",
    "LocalStorage",
    "LocalStorageError",
    "LocalStorageQuotaError",
    "MemoryRemoteStore",
    "RemotePermissionError",
    "RemoteStoreError",
    "RemoteTransportError",
    "StorageArea",
    "SyncConfig",
    "SyncDisabledError",
    "SyncManager",
    "SyncService",
    "SyncSession",
    "SyncStatus",
    "SyncedData",
]
