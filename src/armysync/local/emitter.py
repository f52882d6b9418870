"""In-process change notifications for local record categories.

Writes made in the current context never reach that context's storage
listeners, so the record stores publish here after every successful write.
Topics carry no payload: a notification means "this category may have
changed", not what changed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum

_logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


class ChangeTopic(StrEnum):
    CUSTOM_UNITS = "customUnitsChanged"
    CUSTOM_DETACHMENTS = "customDetachmentsChanged"
    ARMY_LISTS = "armyListsChanged"


class ChangeEmitter:
    """Synchronous publish/subscribe registry keyed by topic."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[ChangeListener]] = {}

    def subscribe(self, topic: str, listener: ChangeListener) -> None:
        self._listeners.setdefault(topic, []).append(listener)

    def unsubscribe(self, topic: str, listener: ChangeListener) -> None:
        listeners = self._listeners.get(topic)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[topic]

    def publish(self, topic: str) -> None:
        """Invoke every listener of *topic* in registration order.

        A failing listener is logged and skipped; the remaining listeners
        still run and ``publish`` itself never raises.
        """
        for listener in list(self._listeners.get(topic, ())):
            try:
                listener()
            except Exception:
                _logger.exception("Listener for %s failed", topic)

    def listener_count(self, topic: str) -> int:
        return len(self._listeners.get(topic, ()))
