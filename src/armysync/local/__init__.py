"""Local side of synchronization.

Raw key-value storage shared between browsing contexts, the in-process
change emitter, and the instrumented record stores that publish to it.
"""

from armysync.local.categories import ALL_CATEGORIES, Category
from armysync.local.emitter import ChangeEmitter, ChangeTopic
from armysync.local.records import ArmyListStore, CustomDetachmentStore, CustomUnitStore, RecordStore
from armysync.local.storage import FileStorageArea, LocalStorage, StorageArea, StorageBackend, StorageChange

__all__ = [
    "ALL_CATEGORIES",
    "ArmyListStore",
    "Category",
    "ChangeEmitter",
    "ChangeTopic",
    "CustomDetachmentStore",
    "CustomUnitStore",
    "FileStorageArea",
    "LocalStorage",
    "RecordStore",
    "StorageArea",
    "StorageBackend",
    "StorageChange",
]
