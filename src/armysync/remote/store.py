"""Remote document stores.

Documents live at ``users/{uid}/data/{name}``. A store exposes two
operations: fetch one document, and commit an atomic batch of writes.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections.abc import Sequence
from typing import Any, Protocol
from urllib.parse import quote

import aiohttp

from armysync._constants import DATA_COLLECTION, USERS_COLLECTION
from armysync.config import SyncConfig
from armysync.exceptions import ArmySyncConfigError, ArmySyncError, RemoteStoreError, RemoteTransportError
from armysync.remote._transport import FirestoreTransport, HttpTransport
from armysync.remote.codec import decode_fields, encode_fields
from armysync.remote.documents import DocumentWrite
from armysync.session import Identity

_logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    """Account-scoped remote document store."""

    async def get_document(self, identity: Identity, name: str) -> dict[str, Any] | None:
        """Return the document data, or ``None`` when it does not exist."""
        ...

    async def commit(self, identity: Identity, writes: Sequence[DocumentWrite]) -> None:
        """Apply all *writes* atomically: either every write lands or none does."""
        ...


def document_path(uid: str, name: str) -> str:
    """Relative path of a per-user document (``users/{uid}/data/{name}``)."""
    if "/" in uid or not uid:
        raise RemoteStoreError(f"invalid identity uid {uid!r}")
    return f"{USERS_COLLECTION}/{uid}/{DATA_COLLECTION}/{name}"


class MemoryRemoteStore:
    """In-process remote store.

    Used for offline mode and tests. Documents are serialized to JSON on
    write so that non-serializable data fails the same way it would over
    the wire. *latency* delays every call, which makes racing pushes
    observable; :attr:`max_concurrent_commits` records the worst overlap seen.
    """

    def __init__(self, *, latency: float = 0.0) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._latency = latency
        self._pending_failure: Exception | None = None
        self._active_commits = 0
        self.commit_count = 0
        self.get_count = 0
        self.max_concurrent_commits = 0

    def fail_next(self, exc: Exception) -> None:
        """Make the next call (get or commit) raise *exc*."""
        self._pending_failure = exc

    def _raise_pending(self) -> None:
        exc = self._pending_failure
        if exc is not None:
            self._pending_failure = None
            raise exc

    def documents(self, uid: str) -> dict[str, dict[str, Any]]:
        """Copy of every stored document for *uid*, keyed by document name."""
        prefix = document_path(uid, "")
        return {
            path[len(prefix) :]: copy.deepcopy(data) for path, data in self._documents.items() if path.startswith(prefix)
        }

    async def get_document(self, identity: Identity, name: str) -> dict[str, Any] | None:
        self.get_count += 1
        if self._latency:
            await asyncio.sleep(self._latency)
        self._raise_pending()
        data = self._documents.get(document_path(identity.uid, name))
        return copy.deepcopy(data) if data is not None else None

    async def commit(self, identity: Identity, writes: Sequence[DocumentWrite]) -> None:
        self._active_commits += 1
        self.max_concurrent_commits = max(self.max_concurrent_commits, self._active_commits)
        try:
            if self._latency:
                await asyncio.sleep(self._latency)
            self._raise_pending()
            staged: list[tuple[str, dict[str, Any] | None]] = []
            for write in writes:
                path = document_path(identity.uid, write.name)
                if write.data is None:
                    staged.append((path, None))
                    continue
                try:
                    encoded = json.loads(json.dumps(write.data))
                except (TypeError, ValueError) as exc:
                    raise RemoteStoreError(f"Cannot serialize {write.name}: {exc}") from exc
                staged.append((path, encoded))
            for path, data in staged:
                if data is None:
                    self._documents.pop(path, None)
                else:
                    self._documents[path] = data
            self.commit_count += 1
        finally:
            self._active_commits -= 1


class FirestoreRemoteStore:
    """Cloud Firestore remote store over the REST API.

    Usage::

        async with FirestoreRemoteStore(config) as remote:
            service = SyncService(storage, remote)
            await service.push(identity)
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: FirestoreTransport | None = None,
    ) -> None:
        if not config.project_id:
            raise ArmySyncConfigError("project_id is required for the Firestore remote store")
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: FirestoreTransport | None = transport

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FirestoreRemoteStore:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> FirestoreTransport:
        if self._transport is None:
            raise ArmySyncError("Remote store not initialized. Use 'async with FirestoreRemoteStore(...) as remote:'")
        return self._transport

    @property
    def _database_root(self) -> str:
        return f"projects/{self._config.project_id}/databases/(default)/documents"

    def _document_name(self, identity: Identity, name: str) -> str:
        return f"{self._database_root}/{document_path(identity.uid, name)}"

    # ------------------------------------------------------------------
    # RemoteStore
    # ------------------------------------------------------------------

    async def get_document(self, identity: Identity, name: str) -> dict[str, Any] | None:
        transport = self._require_transport()
        path = quote(self._document_name(identity, name), safe="/()")
        try:
            response = await transport.request("GET", path, token=identity.id_token)
        except RemoteTransportError as exc:
            if exc.status_code == 404:
                return None
            raise
        try:
            return decode_fields(response.get("fields") or {})
        except (ValueError, TypeError) as exc:
            raise RemoteStoreError(f"Cannot decode document {name}: {exc}") from exc

    async def commit(self, identity: Identity, writes: Sequence[DocumentWrite]) -> None:
        transport = self._require_transport()
        body_writes: list[dict[str, Any]] = []
        for write in writes:
            full_name = self._document_name(identity, write.name)
            if write.data is None:
                body_writes.append({"delete": full_name})
                continue
            try:
                fields = encode_fields(write.data)
            except ValueError as exc:
                raise RemoteStoreError(f"Cannot encode document {write.name}: {exc}") from exc
            body_writes.append({"update": {"name": full_name, "fields": fields}})

        await transport.request(
            "POST",
            f"{self._database_root}:commit",
            token=identity.id_token,
            body={"writes": body_writes},
        )
        _logger.debug("Committed %d writes for uid=%s", len(body_writes), identity.uid)
