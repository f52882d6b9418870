"""Local change detection.

Three independent producers feed one consumer:

1. storage notifications from other browsing contexts, for watched keys,
   run :meth:`ChangeDetector.check_for_changes`;
2. change-emitter topics published by the record stores of this context
   call the trigger directly, since the stores only publish confirmed writes;
3. a low-frequency poll runs :meth:`ChangeDetector.check_for_changes` as a
   safety net for missed or undeliverable notifications (e.g. another
   process writing the same storage file).

``check_for_changes`` compares the raw serialized value of every watched
key with the last one seen and fires the trigger once on any difference.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping

from armysync.local.categories import ALL_CATEGORIES
from armysync.local.emitter import ChangeEmitter, ChangeTopic
from armysync.local.storage import LocalStorage, StorageChange
from armysync.session import SyncSession

_logger = logging.getLogger(__name__)

DEFAULT_WATCHED_KEYS: tuple[str, ...] = tuple(category.key for category in ALL_CATEGORIES)
DEFAULT_TOPICS: tuple[ChangeTopic, ...] = tuple(ChangeTopic)


class ChangeDetector:
    """Observe local mutations regardless of their origin."""

    def __init__(
        self,
        session: SyncSession,
        storage: LocalStorage,
        emitter: ChangeEmitter,
        trigger: Callable[[], None],
        *,
        poll_interval: float = 2.0,
        watched_keys: Iterable[str] = DEFAULT_WATCHED_KEYS,
        topics: Iterable[str] = DEFAULT_TOPICS,
    ) -> None:
        self._session = session
        self._storage = storage
        self._emitter = emitter
        self._trigger = trigger
        self._poll_interval = poll_interval
        self._watched_keys = tuple(watched_keys)
        self._topics = tuple(topics)
        self._snapshot: dict[str, str] = {}
        self._poll_task: asyncio.Task[None] | None = None
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def snapshot(self) -> dict[str, str]:
        """Copy of the last-seen raw value of every watched key."""
        return dict(self._snapshot)

    def _read(self, key: str) -> str:
        return self._storage.get_item(key) or ""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, baseline: Mapping[str, str] | None = None) -> None:
        """Begin watching. Must be called from the event loop.

        *baseline* is the snapshot a previous detector for the same identity
        last saw; keys it covers are compared against it, so changes made
        while detection was off are still pushed on the first check. Keys
        it does not cover are baselined from current storage.
        """
        if self._started:
            return
        self.capture_snapshot()
        if baseline:
            for key in self._watched_keys:
                if key in baseline:
                    self._snapshot[key] = baseline[key]
        self._storage.add_listener(self._on_storage_change)
        for topic in self._topics:
            self._emitter.subscribe(topic, self._on_local_change)
        self._poll_task = asyncio.get_running_loop().create_task(self._poll())
        self._started = True
        _logger.debug("Change detector started for %r", self._session)

    def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        self._storage.remove_listener(self._on_storage_change)
        for topic in self._topics:
            self._emitter.unsubscribe(topic, self._on_local_change)
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()
        _logger.debug("Change detector stopped for %r", self._session)

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def _on_storage_change(self, change: StorageChange) -> None:
        if change.key in self._watched_keys:
            self.check_for_changes()

    def _on_local_change(self) -> None:
        if not self._session.active:
            return
        # No diff needed, but the poll must not see this write again.
        self.capture_snapshot()
        self._trigger()

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            self.check_for_changes()

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    def capture_snapshot(self) -> None:
        """Re-baseline from current storage (e.g. after restoring a pull)."""
        snapshot: dict[str, str] = {}
        for key in self._watched_keys:
            try:
                snapshot[key] = self._read(key)
            except Exception:
                _logger.warning("Failed to read %s for snapshot", key, exc_info=True)
                snapshot[key] = self._snapshot.get(key, "")
        self._snapshot = snapshot

    def check_for_changes(self) -> bool:
        """Diff watched keys against the snapshot; trigger once on any change."""
        if not self._session.active:
            return False
        changed: list[str] = []
        for key in self._watched_keys:
            try:
                current = self._read(key)
            except Exception:
                _logger.warning("Failed to read %s while checking for changes", key, exc_info=True)
                continue
            if current != self._snapshot.get(key, ""):
                self._snapshot[key] = current
                changed.append(key)
        if not changed:
            return False
        _logger.debug("Local change detected in %s", ", ".join(changed))
        self._trigger()
        return True
