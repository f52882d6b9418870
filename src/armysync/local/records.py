"""Instrumented record stores for custom units, custom detachments and army lists.

Each store owns the write path for its category. Every mutating call writes
through the raw :class:`~armysync.local.storage.StorageBackend` first and
publishes the category's :class:`~armysync.local.emitter.ChangeTopic` only
once all writes succeeded, so a failed write never triggers a sync.

Records are opaque JSON objects; the stores only rely on ``id``, ``name``
and the ``createdAt``/``updatedAt`` timestamps.

Other writers must not bypass these stores for the keys they own, or
same-context changes will only be noticed by the change detector's poll.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar

from armysync._clock import parse_iso, to_iso, utcnow
from armysync._constants import UNNAMED_LIST_MAX_AGE_SECONDS
from armysync.exceptions import LocalStorageError
from armysync.local.categories import Category
from armysync.local.emitter import ChangeEmitter, ChangeTopic
from armysync.local.storage import StorageBackend

_logger = logging.getLogger(__name__)

Record = dict[str, Any]

_EPOCH = datetime.min.replace(tzinfo=UTC)


def dumps_compact(value: Any) -> str:
    """Serialize like the web client's ``JSON.stringify``."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _updated_at(record: Mapping[str, Any]) -> datetime:
    value = record.get("updatedAt")
    parsed = parse_iso(value) if isinstance(value, str) else None
    return parsed or _EPOCH


def _require_id(record: Mapping[str, Any]) -> str:
    record_id = record.get("id")
    if not isinstance(record_id, str) or not record_id:
        raise ValueError("record must carry a non-empty string 'id'")
    return record_id


class RecordStore:
    """Base for category stores keyed by record ID."""

    category: ClassVar[Category]
    topic: ClassVar[ChangeTopic]

    def __init__(
        self,
        storage: StorageBackend,
        emitter: ChangeEmitter,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._emitter = emitter
        self._clock = clock

    # ------------------------------------------------------------------
    # Raw access
    # ------------------------------------------------------------------

    def _read_json(self, key: str, default: Any) -> Any:
        """Read and parse *key*; unreadable data counts as missing."""
        try:
            raw = self._storage.get_item(key)
        except Exception:
            _logger.warning("Failed to read %s", key, exc_info=True)
            return default
        if not raw:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning("Ignoring unparseable data under %s", key)
            return default

    def _read_mapping(self, key: str) -> dict[str, Any]:
        value = self._read_json(key, {})
        if not isinstance(value, dict):
            _logger.warning("Ignoring non-object data under %s", key)
            return {}
        return value

    def _commit(self, writes: Mapping[str, Any]) -> None:
        """Write every key, then publish the change topic."""
        for key, value in writes.items():
            try:
                self._storage.set_item(key, dumps_compact(value))
            except LocalStorageError:
                raise
            except Exception as exc:
                raise LocalStorageError(f"Failed to write {key}: {exc}", key=key) from exc
        self._emitter.publish(self.topic)

    def _now_iso(self) -> str:
        return to_iso(self._clock())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all(self) -> dict[str, Record]:
        return self._read_mapping(self.category.key)

    def get(self, record_id: str) -> Record | None:
        return self.get_all().get(record_id)

    def is_name_taken(self, name: str, exclude_id: str | None = None) -> bool:
        wanted = name.lower()
        return any(
            str(record.get("name", "")).lower() == wanted and record.get("id") != exclude_id
            for record in self.get_all().values()
            if isinstance(record, dict)
        )

    @staticmethod
    def generate_id(name: str) -> str:
        slug = re.sub(r"[^a-z0-9]", "-", name.lower())
        slug = re.sub(r"-+", "-", slug)
        return slug.strip("-")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def save(self, record: Mapping[str, Any]) -> Record:
        """Insert or replace *record* under its ``id``."""
        stored = dict(record)
        record_id = _require_id(stored)
        records = self.get_all()
        records[record_id] = stored
        self._commit({self.category.key: records})
        _logger.debug("Saved %s record %s", self.category.name, record_id)
        return stored

    def update(self, record: Mapping[str, Any]) -> Record:
        """Stamp ``updatedAt`` with the current time and save."""
        return self.save({**record, "updatedAt": self._now_iso()})

    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns ``False`` (and publishes nothing) if absent."""
        records = self.get_all()
        if record_id not in records:
            return False
        del records[record_id]
        self._commit({self.category.key: records})
        _logger.debug("Deleted %s record %s", self.category.name, record_id)
        return True


class CustomUnitStore(RecordStore):
    """Custom units saved from the army builder."""

    category = Category.CUSTOM_UNITS
    topic = ChangeTopic.CUSTOM_UNITS

    def list_metadata(self) -> list[Record]:
        return [
            {
                "id": unit.get("id"),
                "name": unit.get("name"),
                "baseUnitId": unit.get("baseUnitId"),
                "faction": unit.get("faction"),
                "subfaction": unit.get("subfaction"),
                "createdAt": unit.get("createdAt"),
                "updatedAt": unit.get("updatedAt"),
                "description": unit.get("description"),
            }
            for unit in self.get_all().values()
            if isinstance(unit, dict)
        ]

    def create_from_army_unit(
        self,
        name: str,
        army_unit: Mapping[str, Any],
        faction: str,
        *,
        subfaction: str | None = None,
        description: str | None = None,
    ) -> Record:
        """Build (but do not save) a custom unit from an army-list unit."""
        now = self._now_iso()
        return {
            "id": self.generate_id(name),
            "name": name,
            "baseUnitId": army_unit.get("unitId"),
            "faction": faction,
            "subfaction": subfaction,
            "upgrades": list(army_unit.get("upgrades") or []),
            "primeAdvantages": army_unit.get("primeAdvantages"),
            "modelInstanceWeaponChanges": army_unit.get("modelInstanceWeaponChanges"),
            "modelInstanceWargearChanges": army_unit.get("modelInstanceWargearChanges"),
            "createdAt": now,
            "updatedAt": now,
            "description": description,
        }


class CustomDetachmentStore(RecordStore):
    """Custom detachments plus their lightweight metadata index."""

    category = Category.CUSTOM_DETACHMENTS
    topic = ChangeTopic.CUSTOM_DETACHMENTS
    metadata_category: ClassVar[Category] = Category.CUSTOM_DETACHMENT_METADATA

    @staticmethod
    def generate_id(name: str) -> str:
        # Detachment IDs keep every replaced character; existing saves depend on it.
        return re.sub(r"[^a-z0-9]", "-", name.lower())

    @staticmethod
    def _metadata_entry(detachment: Mapping[str, Any]) -> Record:
        return {
            "id": detachment.get("id"),
            "name": detachment.get("name"),
            "baseDetachmentId": detachment.get("baseDetachmentId"),
            "faction": detachment.get("faction"),
            "subfaction": detachment.get("subfaction"),
            "customName": detachment.get("customName"),
            "description": detachment.get("description"),
            "createdAt": detachment.get("createdAt"),
            "updatedAt": detachment.get("updatedAt"),
        }

    def get_all_metadata(self) -> dict[str, Record]:
        return self._read_mapping(self.metadata_category.key)

    def list_metadata(self) -> list[Record]:
        """Metadata entries, most recently updated first."""
        entries = [entry for entry in self.get_all_metadata().values() if isinstance(entry, dict)]
        return sorted(entries, key=_updated_at, reverse=True)

    def save(self, record: Mapping[str, Any]) -> Record:
        stored = dict(record)
        record_id = _require_id(stored)
        records = self.get_all()
        records[record_id] = stored
        metadata = self.get_all_metadata()
        metadata[record_id] = self._metadata_entry(stored)
        self._commit({self.category.key: records, self.metadata_category.key: metadata})
        _logger.debug("Saved custom detachment %s", record_id)
        return stored

    def delete(self, record_id: str) -> bool:
        records = self.get_all()
        if record_id not in records:
            return False
        del records[record_id]
        writes: dict[str, Any] = {self.category.key: records}
        metadata = self.get_all_metadata()
        if record_id in metadata:
            del metadata[record_id]
            writes[self.metadata_category.key] = metadata
        self._commit(writes)
        _logger.debug("Deleted custom detachment %s", record_id)
        return True

    def create(
        self,
        name: str,
        base_detachment_id: str,
        faction: str,
        *,
        subfaction: str | None = None,
        custom_name: str | None = None,
        description: str = "",
        units: list[Any] | None = None,
        prime_advantages: list[Any] | None = None,
    ) -> Record:
        """Build (but do not save) a custom detachment."""
        now = self._now_iso()
        return {
            "id": self.generate_id(name),
            "name": name,
            "baseDetachmentId": base_detachment_id,
            "faction": faction,
            "subfaction": subfaction,
            "customName": custom_name,
            "description": description,
            "units": list(units or []),
            "primeAdvantages": list(prime_advantages or []),
            "createdAt": now,
            "updatedAt": now,
        }


class ArmyListStore(RecordStore):
    """Army lists, stored wrapped as ``{id, name, data, isNamed, createdAt, updatedAt}``.

    The metadata index is a JSON list sorted newest first, rebuilt on
    every write so it never drifts from the stored lists.
    """

    category = Category.ARMY_LISTS
    topic = ChangeTopic.ARMY_LISTS
    metadata_category: ClassVar[Category] = Category.ARMY_LIST_METADATA

    @staticmethod
    def generate_id(name: str = "") -> str:
        return str(uuid.uuid4())

    def create_new(self, faction: str, points_limit: int, allegiance: str) -> Record:
        """Build (but do not save) an empty, unnamed army list."""
        now = self._now_iso()
        return {
            "id": self.generate_id(),
            "name": "New Army List",
            "faction": faction,
            "allegiance": allegiance,
            "pointsLimit": points_limit,
            "totalPoints": 0,
            "detachments": [],
            "validationErrors": [],
            "createdAt": now,
            "updatedAt": now,
            "isNamed": False,
        }

    @staticmethod
    def _metadata_entry(stored: Mapping[str, Any]) -> Record:
        army = stored.get("data") if isinstance(stored.get("data"), dict) else {}
        return {
            "id": stored.get("id"),
            "name": stored.get("name"),
            "faction": army.get("faction"),
            "allegiance": army.get("allegiance"),
            "pointsLimit": army.get("pointsLimit"),
            "totalPoints": army.get("totalPoints"),
            "isNamed": stored.get("isNamed", False),
            "createdAt": stored.get("createdAt"),
            "updatedAt": stored.get("updatedAt"),
        }

    def _build_metadata(self, stored_lists: Mapping[str, Any]) -> list[Record]:
        entries = [self._metadata_entry(s) for s in stored_lists.values() if isinstance(s, dict)]
        return sorted(entries, key=_updated_at, reverse=True)

    def list_metadata(self) -> list[Record]:
        value = self._read_json(self.metadata_category.key, [])
        if not isinstance(value, list):
            _logger.warning("Ignoring non-list army list metadata")
            return []
        return value

    def load(self, list_id: str) -> Record | None:
        """Return the army itself (the ``data`` of the stored wrapper)."""
        stored = self.get(list_id)
        if not isinstance(stored, dict):
            return None
        army = stored.get("data")
        return army if isinstance(army, dict) else None

    def save(self, record: Mapping[str, Any]) -> Record:
        """Save an army, always stamping ``updatedAt``."""
        army = {**record, "updatedAt": self._now_iso()}
        list_id = _require_id(army)
        stored = {
            "id": list_id,
            "name": army.get("name"),
            "data": army,
            "isNamed": bool(army.get("isNamed", False)),
            "createdAt": army.get("createdAt"),
            "updatedAt": army["updatedAt"],
        }
        lists = self.get_all()
        lists[list_id] = stored
        self._commit({self.category.key: lists, self.metadata_category.key: self._build_metadata(lists)})
        _logger.debug("Saved army list %s", list_id)
        return army

    def update(self, record: Mapping[str, Any]) -> Record:
        return self.save(record)

    def delete(self, record_id: str) -> bool:
        lists = self.get_all()
        if record_id not in lists:
            return False
        del lists[record_id]
        self._commit({self.category.key: lists, self.metadata_category.key: self._build_metadata(lists)})
        _logger.debug("Deleted army list %s", record_id)
        return True

    def rename(self, list_id: str, new_name: str) -> bool:
        """Rename a list, which also marks it as named (kept by cleanup)."""
        army = self.load(list_id)
        if army is None:
            return False
        self.save({**army, "name": new_name, "isNamed": True})
        return True

    def cleanup_unnamed(self, max_age: timedelta = timedelta(seconds=UNNAMED_LIST_MAX_AGE_SECONDS)) -> list[str]:
        """Delete unnamed lists created more than *max_age* ago.

        Returns the removed IDs. Publishes once, and only if anything was removed.
        """
        lists = self.get_all()
        cutoff = self._clock() - max_age
        removed: list[str] = []
        for list_id, stored in list(lists.items()):
            if not isinstance(stored, dict) or stored.get("isNamed"):
                continue
            created_raw = stored.get("createdAt")
            created = parse_iso(created_raw) if isinstance(created_raw, str) else None
            if created is not None and created < cutoff:
                del lists[list_id]
                removed.append(list_id)
        if removed:
            self._commit({self.category.key: lists, self.metadata_category.key: self._build_metadata(lists)})
            _logger.debug("Cleaned up %d unnamed army lists", len(removed))
        return removed
