"""Raw key-value local storage with cross-context change notifications.

A :class:`StorageArea` is the shared backing store for one origin, the
equivalent of a browser's ``localStorage``. Each browsing context (tab,
window, worker) gets its own :class:`LocalStorage` view of the area. When
one context writes a key, every *other* attached context is notified with
a :class:`StorageChange`; the writer itself is not.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from armysync.exceptions import LocalStorageError, LocalStorageQuotaError

_logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    """Synchronous string key-value store consumed by the record stores."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


@dataclass(frozen=True, slots=True)
class StorageChange:
    """Notification that another context changed a shared key."""

    key: str
    old_value: str | None
    new_value: str | None


StorageListener = Callable[[StorageChange], None]


def _entry_size(key: str, value: str) -> int:
    return len(key) + len(value)


class StorageArea:
    """Shared backing store for a set of browsing contexts.

    Parameters
    ----------
    quota_bytes : int or None
        Maximum combined size of keys and values. A write that would exceed
        it raises :class:`LocalStorageQuotaError` and changes nothing.
    initial : Mapping[str, str] or None
        Pre-existing contents.
    """

    def __init__(
        self,
        *,
        quota_bytes: int | None = None,
        initial: Mapping[str, str] | None = None,
    ) -> None:
        self._quota_bytes = quota_bytes
        self._values: dict[str, str] = dict(initial or {})
        self._contexts: list[LocalStorage] = []

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    def context(self) -> LocalStorage:
        """Open a new browsing context attached to this area."""
        return LocalStorage(self)

    def _attach(self, context: LocalStorage) -> None:
        self._contexts.append(context)

    def _detach(self, context: LocalStorage) -> None:
        try:
            self._contexts.remove(context)
        except ValueError:
            pass

    @property
    def context_count(self) -> int:
        return len(self._contexts)

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def keys(self) -> list[str]:
        return list(self._values)

    def usage(self) -> int:
        """Current combined size of keys and values."""
        return sum(_entry_size(k, v) for k, v in self._values.items())

    def snapshot(self) -> dict[str, str]:
        return dict(self._values)

    def write(self, source: LocalStorage | None, key: str, value: str | None) -> None:
        """Set (or remove, when *value* is ``None``) *key* and notify other contexts."""
        old_value = self._values.get(key)
        if value is not None and self._quota_bytes is not None:
            projected = self.usage() - (_entry_size(key, old_value) if old_value is not None else 0)
            projected += _entry_size(key, value)
            if projected > self._quota_bytes:
                raise LocalStorageQuotaError(
                    f"Writing {key!r} would exceed the storage quota ({projected} > {self._quota_bytes})",
                    key=key,
                )

        if value is None:
            if old_value is None:
                return
            del self._values[key]
        else:
            self._values[key] = value
        try:
            self._persist()
        except LocalStorageError:
            # A rejected write must leave the area exactly as it was.
            if old_value is None:
                self._values.pop(key, None)
            else:
                self._values[key] = old_value
            raise

        if old_value == value:
            return
        change = StorageChange(key=key, old_value=old_value, new_value=value)
        for context in list(self._contexts):
            if context is not source:
                context._dispatch(change)

    def _persist(self) -> None:
        """Hook for persistent areas; the in-memory area keeps nothing."""


class FileStorageArea(StorageArea):
    """Storage area persisted as a single JSON object on disk.

    Other processes sharing the file are not notified of writes; they pick
    changes up on their next read, which is what the change detector's
    poll relies on.
    """

    def __init__(self, path: str | os.PathLike[str], *, quota_bytes: int | None = None) -> None:
        super().__init__(quota_bytes=quota_bytes)
        self._path = Path(path)
        self._stamp: tuple[int, int] | None = None
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _file_stamp(self) -> tuple[int, int] | None:
        try:
            stat = self._path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size)

    def _load(self) -> None:
        stamp = self._file_stamp()
        if stamp is None:
            self._values = {}
            self._stamp = None
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise LocalStorageError(f"Cannot read storage file {self._path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise LocalStorageError(f"Storage file {self._path} does not hold a JSON object")
        self._values = {str(k): v for k, v in raw.items() if isinstance(v, str)}
        self._stamp = stamp

    def _refresh(self) -> None:
        if self._file_stamp() != self._stamp:
            _logger.debug("Storage file %s changed on disk; reloading", self._path)
            self._load()

    def get(self, key: str) -> str | None:
        self._refresh()
        return super().get(key)

    def keys(self) -> list[str]:
        self._refresh()
        return super().keys()

    def write(self, source: LocalStorage | None, key: str, value: str | None) -> None:
        self._refresh()
        super().write(source, key, value)

    def _persist(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(f".{self._path.name}.tmp")
        try:
            tmp.write_text(json.dumps(self._values, separators=(",", ":")), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as exc:
            raise LocalStorageError(f"Cannot write storage file {self._path}: {exc}") from exc
        self._stamp = self._file_stamp()


class LocalStorage:
    """One browsing context's view of a :class:`StorageArea`.

    Implements :class:`StorageBackend`. Listeners registered with
    :meth:`add_listener` receive changes made through other contexts only.
    """

    def __init__(self, area: StorageArea) -> None:
        self._area = area
        self._listeners: list[StorageListener] = []
        self._closed = False
        area._attach(self)

    @property
    def area(self) -> StorageArea:
        return self._area

    def get_item(self, key: str) -> str | None:
        return self._area.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._require_open()
        self._area.write(self, key, str(value))

    def remove_item(self, key: str) -> None:
        self._require_open()
        self._area.write(self, key, None)

    def keys(self) -> list[str]:
        return self._area.keys()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._area.get(key) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self._area.keys())

    def __len__(self) -> int:
        return len(self._area.keys())

    def add_listener(self, listener: StorageListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StorageListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _dispatch(self, change: StorageChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                _logger.exception("Storage listener failed for key %r", change.key)

    def _require_open(self) -> None:
        if self._closed:
            raise LocalStorageError("Storage context is closed")

    def close(self) -> None:
        """Detach from the area; pending listeners are dropped."""
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        self._area._detach(self)
