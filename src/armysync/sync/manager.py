"""Session lifecycle: wires detection and scheduling to the current identity."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from armysync.config import SyncConfig
from armysync.exceptions import SyncDisabledError
from armysync.local.emitter import ChangeEmitter
from armysync.local.storage import LocalStorage
from armysync.remote.documents import SyncedData
from armysync.remote.store import RemoteStore
from armysync.session import Identity, SyncSession
from armysync.sync.detector import ChangeDetector
from armysync.sync.scheduler import DebounceScheduler, IntervalScheduler, SchedulerStatus
from armysync.sync.service import SyncService

_logger = logging.getLogger(__name__)


class SyncStatus(BaseModel):
    """Snapshot of the manager's state for display."""

    model_config = ConfigDict(frozen=True)

    uid: str | None = None
    enabled: bool = False
    debounce_pending: bool = False
    interval: SchedulerStatus = Field(default_factory=SchedulerStatus)
    debounce: SchedulerStatus = Field(default_factory=SchedulerStatus)


class _Wiring:
    """Components bound to one :class:`SyncSession`."""

    def __init__(
        self,
        manager: SyncManager,
        session: SyncSession,
    ) -> None:
        config = manager.config
        self.session = session

        def _push() -> Any:
            return manager.service.push(session.identity)

        callbacks: dict[str, Any] = {
            "on_start": manager._on_sync_start,
            "on_complete": manager._on_sync_complete,
            "on_error": manager._on_sync_error,
        }
        self.debounce = DebounceScheduler(session, _push, delay=config.debounce_delay, **callbacks)
        self.interval = IntervalScheduler(session, _push, interval=config.sync_interval, **callbacks)
        self.detector = ChangeDetector(
            session,
            manager.storage,
            manager.emitter,
            self.debounce.trigger,
            poll_interval=config.poll_interval,
        )

    def start_auto(self, baseline: dict[str, str] | None) -> None:
        self.detector.start(baseline)
        self.interval.start()

    def stop_auto(self) -> None:
        self.detector.stop()
        self.debounce.cancel()
        self.interval.stop()

    def close(self) -> None:
        self.stop_auto()
        self.debounce.close()
        self.interval.close()
        self.session.close()

    async def wait_idle(self) -> None:
        await self.debounce.wait_idle()
        await self.interval.wait_idle()


class SyncManager:
    """Keeps local storage mirrored to the remote store for the signed-in identity.

    Usage::

        async with SyncManager(storage, remote, config=config) as manager:
            manager.set_identity(identity)   # sign-in
            ...
            manager.set_identity(None)       # sign-out

    Every identity change creates a fresh :class:`SyncSession`; the previous
    one is closed, which cancels its pending debounce timer, its interval
    cadence and its poll, and discards results of pushes still in flight.
    """

    def __init__(
        self,
        storage: LocalStorage,
        remote: RemoteStore,
        *,
        config: SyncConfig | None = None,
        emitter: ChangeEmitter | None = None,
        service: SyncService | None = None,
        on_sync_start: Callable[[], None] | None = None,
        on_sync_complete: Callable[[], None] | None = None,
        on_sync_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self.config = config or SyncConfig()
        self.storage = storage
        self.emitter = emitter or ChangeEmitter()
        self.service = service or SyncService(storage, remote)
        self._on_sync_start_cb = on_sync_start
        self._on_sync_complete_cb = on_sync_complete
        self._on_sync_error_cb = on_sync_error
        self._wiring: _Wiring | None = None
        self._enabled = self.config.auto_sync
        self._baselines: dict[str, dict[str, str]] = {}

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncManager:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Sign out and wait for pushes already in flight to settle."""
        wiring = self._wiring
        self.set_identity(None)
        if wiring is not None:
            await wiring.wait_idle()

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _on_sync_start(self) -> None:
        if self._on_sync_start_cb is not None:
            self._on_sync_start_cb()

    def _on_sync_complete(self) -> None:
        if self._on_sync_complete_cb is not None:
            self._on_sync_complete_cb()

    def _on_sync_error(self, exc: Exception) -> None:
        if self._on_sync_error_cb is not None:
            self._on_sync_error_cb(exc)

    # ------------------------------------------------------------------
    # Identity and enable flag
    # ------------------------------------------------------------------

    @property
    def identity(self) -> Identity | None:
        return self._wiring.session.identity if self._wiring is not None else None

    @property
    def session(self) -> SyncSession | None:
        return self._wiring.session if self._wiring is not None else None

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_identity(self, identity: Identity | None) -> None:
        """Switch to *identity* (sign-in), or tear everything down for ``None``."""
        current = self._wiring
        if current is not None and identity is not None and current.session.identity.uid == identity.uid:
            current.session.refresh_identity(identity)
            return

        if current is not None:
            if current.detector.started:
                # Only the most recent session's baseline is kept.
                self._baselines = {current.session.identity.uid: current.detector.snapshot}
            current.close()
            self._wiring = None
            _logger.debug("Sync session closed for uid=%s", current.session.identity.uid)

        if identity is None:
            return

        session = SyncSession(identity, enabled=self._enabled)
        self._wiring = _Wiring(self, session)
        _logger.debug("Sync session opened for uid=%s", identity.uid)
        if session.active:
            self._wiring.start_auto(self._baselines.get(identity.uid))

    def set_enabled(self, enabled: bool) -> None:
        """Turn automatic sync on or off without signing out."""
        self._enabled = bool(enabled)
        wiring = self._wiring
        if wiring is None or wiring.session.enabled == self._enabled:
            return
        wiring.session.enabled = self._enabled
        if self._enabled:
            wiring.start_auto(self._baselines.get(wiring.session.identity.uid))
        else:
            if wiring.detector.started:
                self._baselines = {wiring.session.identity.uid: wiring.detector.snapshot}
            wiring.stop_auto()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _require_identity(self) -> Identity:
        identity = self.identity
        if identity is None:
            raise SyncDisabledError("No identity is signed in")
        return identity

    @property
    def status(self) -> SyncStatus:
        wiring = self._wiring
        if wiring is None:
            return SyncStatus(enabled=self._enabled)
        return SyncStatus(
            uid=wiring.session.identity.uid,
            enabled=wiring.session.active,
            debounce_pending=wiring.debounce.pending,
            interval=wiring.interval.status,
            debounce=wiring.debounce.status,
        )

    async def push(self) -> SyncedData:
        """Push now, outside any schedule. Errors propagate."""
        return await self.service.push(self._require_identity())

    async def sync_now(self) -> bool:
        """Manual push through the interval scheduler; failures are recorded, not raised."""
        self._require_identity()
        assert self._wiring is not None  # noqa: S101
        return await self._wiring.interval.sync_now()

    async def pull(self) -> bool:
        """Restore local storage from the remote copy (full overwrite).

        The change detector is re-baselined afterwards so the restored data
        is not mistaken for a local edit. Callers should reload any state
        derived from local storage when this returns ``True``.
        """
        identity = self._require_identity()
        restored = await self.service.pull(identity)
        wiring = self._wiring
        if restored and wiring is not None and wiring.session.identity.uid == identity.uid:
            wiring.detector.capture_snapshot()
        return restored

    async def has_remote_data(self) -> bool:
        return await self.service.has_remote_data(self._require_identity())

    async def last_synced_at(self) -> str | None:
        return await self.service.last_synced_at(self._require_identity())

    async def clear_remote(self) -> None:
        await self.service.clear(self._require_identity())
