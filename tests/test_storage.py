from __future__ import annotations

import json
from pathlib import Path

import pytest

from armysync.exceptions import LocalStorageError, LocalStorageQuotaError
from armysync.local.emitter import ChangeEmitter, ChangeTopic
from armysync.local.records import CustomUnitStore
from armysync.local.storage import FileStorageArea, StorageArea, StorageChange


def test_writer_context_is_not_notified_but_others_are() -> None:
    area = StorageArea()
    tab_a = area.context()
    tab_b = area.context()
    seen_a: list[StorageChange] = []
    seen_b: list[StorageChange] = []
    tab_a.add_listener(seen_a.append)
    tab_b.add_listener(seen_b.append)

    tab_a.set_item("heresy-custom-units", '{"u":1}')

    assert seen_a == []
    assert seen_b == [StorageChange(key="heresy-custom-units", old_value=None, new_value='{"u":1}')]
    assert tab_b.get_item("heresy-custom-units") == '{"u":1}'


def test_unchanged_value_and_missing_remove_do_not_notify() -> None:
    area = StorageArea(initial={"k": "v"})
    writer = area.context()
    reader = area.context()
    seen: list[StorageChange] = []
    reader.add_listener(seen.append)

    writer.set_item("k", "v")
    writer.remove_item("absent")
    writer.remove_item("k")

    assert seen == [StorageChange(key="k", old_value="v", new_value=None)]
    assert "k" not in reader


def test_quota_rejects_write_and_keeps_previous_value() -> None:
    area = StorageArea(quota_bytes=10)
    storage = area.context()
    storage.set_item("k", "12345")

    with pytest.raises(LocalStorageQuotaError) as excinfo:
        storage.set_item("k", "x" * 20)

    assert excinfo.value.key == "k"
    assert storage.get_item("k") == "12345"


def test_closed_context_rejects_writes_and_stops_listening() -> None:
    area = StorageArea()
    writer = area.context()
    closed = area.context()
    seen: list[StorageChange] = []
    closed.add_listener(seen.append)
    closed.close()

    writer.set_item("k", "v")

    assert seen == []
    assert area.context_count == 1
    with pytest.raises(LocalStorageError):
        closed.set_item("k", "w")


def test_failing_listener_is_isolated() -> None:
    area = StorageArea()
    writer = area.context()
    reader = area.context()
    seen: list[str] = []

    def _boom(change: StorageChange) -> None:
        raise RuntimeError("boom")

    reader.add_listener(_boom)
    reader.add_listener(lambda change: seen.append(change.key))

    writer.set_item("k", "v")

    assert seen == ["k"]


def test_file_area_persists_and_reloads(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "storage.json"
    storage = FileStorageArea(path).context()
    storage.set_item("customDetachments", '{"a":{"id":"a"}}')

    assert json.loads(path.read_text(encoding="utf-8")) == {"customDetachments": '{"a":{"id":"a"}}'}
    assert FileStorageArea(path).get("customDetachments") == '{"a":{"id":"a"}}'


def test_file_area_picks_up_writes_from_another_process(tmp_path: Path) -> None:
    path = tmp_path / "storage.json"
    area = FileStorageArea(path)
    other = FileStorageArea(path)

    other.context().set_item("k", "from-other-process")

    assert area.get("k") == "from-other-process"
    assert area.keys() == ["k"]


def test_file_area_rejects_non_object_file(tmp_path: Path) -> None:
    path = tmp_path / "storage.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(LocalStorageError):
        FileStorageArea(path)


def test_failed_file_write_leaves_area_unchanged(tmp_path: Path) -> None:
    path = tmp_path / "storage.json"
    storage = FileStorageArea(path).context()
    storage.set_item("k", "old")
    # A directory in place of the temp file makes the atomic write fail.
    (tmp_path / ".storage.json.tmp").mkdir()

    with pytest.raises(LocalStorageError):
        storage.set_item("k", "new")
    with pytest.raises(LocalStorageError):
        storage.set_item("fresh", "value")
    with pytest.raises(LocalStorageError):
        storage.remove_item("k")

    assert storage.get_item("k") == "old"
    assert storage.get_item("fresh") is None
    assert json.loads(path.read_text(encoding="utf-8")) == {"k": "old"}


def test_failed_record_save_is_not_visible_afterwards(tmp_path: Path) -> None:
    emitter = ChangeEmitter()
    published: list[int] = []
    emitter.subscribe(ChangeTopic.CUSTOM_UNITS, lambda: published.append(1))
    units = CustomUnitStore(FileStorageArea(tmp_path / "storage.json").context(), emitter)
    (tmp_path / ".storage.json.tmp").mkdir()

    with pytest.raises(LocalStorageError):
        units.save({"id": "a", "name": "A"})

    assert units.get_all() == {}
    assert published == []
    assert not (tmp_path / "storage.json").exists()
