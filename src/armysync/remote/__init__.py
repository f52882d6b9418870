"""Remote side of synchronization: document models, codec and stores."""

from armysync.remote.documents import DocumentWrite, MetadataDocument, SyncedData
from armysync.remote.store import FirestoreRemoteStore, MemoryRemoteStore, RemoteStore, document_path

__all__ = [
    "DocumentWrite",
    "FirestoreRemoteStore",
    "MemoryRemoteStore",
    "MetadataDocument",
    "RemoteStore",
    "SyncedData",
    "document_path",
]
