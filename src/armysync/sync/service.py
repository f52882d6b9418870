"""Remote-facing sync facade.

:class:`SyncService` turns the union of local categories into one remote
:class:`~armysync.remote.documents.SyncedData` document (push) and restores
it into local storage (pull). It is the only writer of remote documents.

Push and pull are serialized per identity: a second call for the same
``uid`` waits for the one in flight and then runs, so two schedulers racing
each other can never interleave the writes of one batch.

Pull is a full overwrite. Local edits made since the last push, or while
the pull's network round-trip is in progress, are lost.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from armysync._clock import to_iso, utcnow
from armysync._constants import (
    ARMY_LISTS_METADATA_DOCUMENT,
    CUSTOM_DETACHMENTS_METADATA_DOCUMENT,
    SYNCED_DATA_DOCUMENT,
)
from armysync.exceptions import ArmySyncError, LocalDataError, LocalStorageError, RemoteStoreError
from armysync.local.categories import Category
from armysync.local.records import dumps_compact
from armysync.local.storage import StorageBackend
from armysync.remote.documents import DocumentWrite, MetadataDocument, SyncedData
from armysync.remote.store import RemoteStore
from armysync.session import Identity

_logger = logging.getLogger(__name__)

#: Local metadata category -> remote metadata document.
METADATA_DOCUMENTS: tuple[tuple[Category, str], ...] = (
    (Category.ARMY_LIST_METADATA, ARMY_LISTS_METADATA_DOCUMENT),
    (Category.CUSTOM_DETACHMENT_METADATA, CUSTOM_DETACHMENTS_METADATA_DOCUMENT),
)


class SyncService:
    """Push, pull and inspect the remote copy of local data."""

    def __init__(
        self,
        storage: StorageBackend,
        remote: RemoteStore,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._remote = remote
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._last_pushed: dict[str, datetime] = {}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _exclusive(self, identity: Identity) -> AsyncIterator[None]:
        """Hold the per-uid lock. The lock is dropped once nobody holds or awaits it."""
        uid = identity.uid
        lock = self._locks.setdefault(uid, asyncio.Lock())
        self._lock_users[uid] = self._lock_users.get(uid, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[uid] -= 1
            if not self._lock_users[uid]:
                del self._lock_users[uid]
                del self._locks[uid]

    def in_flight(self, identity: Identity) -> bool:
        """Whether a push or pull currently holds the lock for *identity*."""
        lock = self._locks.get(identity.uid)
        return lock is not None and lock.locked()

    def _read_category(self, category: Category) -> Any | None:
        """Parsed value of a category, ``None`` when missing or empty."""
        try:
            raw = self._storage.get_item(category.key)
        except LocalStorageError:
            raise
        except Exception as exc:
            raise LocalStorageError(f"Failed to read {category.key}: {exc}", key=category.key) from exc
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise LocalDataError(f"{category.key} does not hold valid JSON: {exc}", key=category.key) from exc

    def _write_category(self, category: Category, value: Any) -> None:
        try:
            self._storage.set_item(category.key, dumps_compact(value))
        except LocalStorageError:
            raise
        except Exception as exc:
            raise LocalStorageError(f"Failed to write {category.key}: {exc}", key=category.key) from exc

    def _next_stamp(self, identity: Identity) -> datetime:
        now = self._clock()
        previous = self._last_pushed.get(identity.uid)
        if previous is not None and now < previous:
            return previous
        return now

    async def _get(self, identity: Identity, name: str) -> dict[str, Any] | None:
        try:
            return await self._remote.get_document(identity, name)
        except ArmySyncError:
            raise
        except Exception as exc:
            raise RemoteStoreError(f"Failed to read {name}: {exc}") from exc

    async def _commit(self, identity: Identity, writes: list[DocumentWrite]) -> None:
        try:
            await self._remote.commit(identity, writes)
        except ArmySyncError:
            raise
        except Exception as exc:
            raise RemoteStoreError(f"Batch write failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def build_document(self, identity: Identity) -> tuple[SyncedData, list[DocumentWrite]]:
        """Assemble the batch a push would write, without writing it."""
        stamp = self._next_stamp(identity)

        def _main(category: Category) -> Any:
            value = self._read_category(category)
            return {} if value is None else value

        data = SyncedData(
            army_lists=_main(Category.ARMY_LISTS),
            custom_detachments=_main(Category.CUSTOM_DETACHMENTS),
            custom_units=_main(Category.CUSTOM_UNITS),
            last_synced=to_iso(stamp),
        )
        writes = [DocumentWrite.set(SYNCED_DATA_DOCUMENT, data.to_document())]
        for category, document in METADATA_DOCUMENTS:
            metadata = self._read_category(category)
            if metadata is not None:
                writes.append(DocumentWrite.set(document, MetadataDocument(data=metadata).to_document()))
        return data, writes

    async def push(self, identity: Identity) -> SyncedData:
        """Write all local categories to the remote store as one batch.

        Raises on any read, serialize or write failure; nothing is recorded
        in that case, so the next trigger simply tries again.
        """
        async with self._exclusive(identity):
            data, writes = self.build_document(identity)
            await self._commit(identity, writes)
            self._last_pushed[identity.uid] = data.last_synced_at
        _logger.debug("Pushed %d documents for uid=%s at %s", len(writes), identity.uid, data.last_synced)
        return data

    async def pull(self, identity: Identity) -> bool:
        """Overwrite local categories with the remote copy.

        Returns ``False`` without touching local storage when no remote
        document exists. Errors propagate to the caller.
        """
        async with self._exclusive(identity):
            raw = await self._get(identity, SYNCED_DATA_DOCUMENT)
            if raw is None:
                _logger.debug("No remote data for uid=%s", identity.uid)
                return False
            try:
                data = SyncedData.model_validate(raw)
            except ValidationError as exc:
                raise RemoteStoreError(f"Malformed {SYNCED_DATA_DOCUMENT} document: {exc}") from exc

            # Fetch everything before the first local write so the restore
            # is applied without yielding to the event loop.
            metadata: list[tuple[Category, Any]] = []
            for category, document in METADATA_DOCUMENTS:
                metadata_raw = await self._get(identity, document)
                if metadata_raw is not None:
                    metadata.append((category, MetadataDocument.model_validate(metadata_raw).data))

            self._write_category(Category.ARMY_LISTS, data.army_lists)
            self._write_category(Category.CUSTOM_DETACHMENTS, data.custom_detachments)
            self._write_category(Category.CUSTOM_UNITS, data.custom_units)
            for category, value in metadata:
                self._write_category(category, value)

        _logger.debug("Pulled remote data for uid=%s (lastSynced=%s)", identity.uid, data.last_synced)
        return True

    async def has_remote_data(self, identity: Identity) -> bool:
        return await self._get(identity, SYNCED_DATA_DOCUMENT) is not None

    async def last_synced_at(self, identity: Identity) -> str | None:
        raw = await self._get(identity, SYNCED_DATA_DOCUMENT)
        if raw is None:
            return None
        value = raw.get("lastSynced")
        return value if isinstance(value, str) else None

    async def clear(self, identity: Identity) -> None:
        """Delete the main and both metadata documents in one batch."""
        writes = [DocumentWrite.delete(SYNCED_DATA_DOCUMENT)]
        writes.extend(DocumentWrite.delete(document) for _, document in METADATA_DOCUMENTS)
        async with self._exclusive(identity):
            await self._commit(identity, writes)
            self._last_pushed.pop(identity.uid, None)
        _logger.debug("Cleared remote data for uid=%s", identity.uid)
