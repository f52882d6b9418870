from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from armysync.exceptions import LocalDataError, RemoteStoreError
from armysync.local.categories import ALL_CATEGORIES, Category
from armysync.local.storage import StorageArea
from armysync.remote.documents import DocumentWrite
from armysync.remote.store import MemoryRemoteStore
from armysync.session import Identity
from armysync.sync.service import SyncService

_SAMPLE = {
    Category.ARMY_LISTS.key: '{"l1":{"id":"l1","name":"Crusade","data":{"id":"l1","pointsLimit":3000},"isNamed":true}}',
    Category.ARMY_LIST_METADATA.key: '[{"id":"l1","name":"Crusade","isNamed":true}]',
    Category.CUSTOM_DETACHMENTS.key: '{"d1":{"id":"d1","name":"Spearhead","units":[]}}',
    Category.CUSTOM_DETACHMENT_METADATA.key: '{"d1":{"id":"d1","name":"Spearhead"}}',
    Category.CUSTOM_UNITS.key: '{"u1":{"id":"u1","name":"Breachers","upgrades":[{"id":"x"}]}}',
}


class _SteppingClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def _identity(uid: str = "user-1") -> Identity:
    return Identity(uid=uid, id_token="tok")


@pytest.mark.asyncio
async def test_push_then_pull_on_empty_device_restores_every_category() -> None:
    remote = MemoryRemoteStore()
    source = StorageArea(initial=_SAMPLE).context()
    await SyncService(source, remote).push(_identity())

    target_area = StorageArea()
    restored = await SyncService(target_area.context(), remote).pull(_identity())

    assert restored is True
    assert target_area.snapshot() == _SAMPLE


@pytest.mark.asyncio
async def test_push_writes_main_and_metadata_documents() -> None:
    remote = MemoryRemoteStore()
    clock = _SteppingClock(datetime(2026, 3, 1, 8, 30, tzinfo=UTC))
    service = SyncService(StorageArea(initial=_SAMPLE).context(), remote, clock=clock)

    data = await service.push(_identity())

    documents = remote.documents("user-1")
    assert set(documents) == {"syncedData", "armyListsMetadata", "customDetachmentsMetadata"}
    assert documents["syncedData"]["lastSynced"] == "2026-03-01T08:30:00.000Z"
    assert documents["syncedData"]["customUnits"]["u1"]["upgrades"] == [{"id": "x"}]
    assert documents["armyListsMetadata"] == {"data": [{"id": "l1", "name": "Crusade", "isNamed": True}]}
    assert data.last_synced == "2026-03-01T08:30:00.000Z"
    assert remote.commit_count == 1


@pytest.mark.asyncio
async def test_missing_categories_push_as_empty_objects_without_metadata() -> None:
    remote = MemoryRemoteStore()
    service = SyncService(StorageArea().context(), remote)

    await service.push(_identity())

    documents = remote.documents("user-1")
    assert set(documents) == {"syncedData"}
    synced = documents["syncedData"]
    assert synced["armyLists"] == {}
    assert synced["customDetachments"] == {}
    assert synced["customUnits"] == {}


@pytest.mark.asyncio
async def test_corrupt_local_category_fails_push_without_writing() -> None:
    remote = MemoryRemoteStore()
    storage = StorageArea(initial={Category.CUSTOM_UNITS.key: "{broken"}).context()

    with pytest.raises(LocalDataError) as excinfo:
        await SyncService(storage, remote).push(_identity())

    assert excinfo.value.key == Category.CUSTOM_UNITS.key
    assert remote.commit_count == 0


@pytest.mark.asyncio
async def test_has_remote_data_and_last_synced() -> None:
    remote = MemoryRemoteStore()
    clock = _SteppingClock(datetime(2026, 3, 1, tzinfo=UTC))
    service = SyncService(StorageArea().context(), remote, clock=clock)

    assert await service.has_remote_data(_identity()) is False
    assert await service.last_synced_at(_identity()) is None

    await service.push(_identity())

    assert await service.has_remote_data(_identity()) is True
    assert await service.last_synced_at(_identity()) == "2026-03-01T00:00:00.000Z"
    assert await service.has_remote_data(_identity("someone-else")) is False


@pytest.mark.asyncio
async def test_last_synced_never_moves_backwards() -> None:
    remote = MemoryRemoteStore()
    clock = _SteppingClock(datetime(2026, 3, 1, 12, 0, tzinfo=UTC))
    service = SyncService(StorageArea().context(), remote, clock=clock)

    first = await service.push(_identity())
    clock.now -= timedelta(minutes=5)
    second = await service.push(_identity())
    clock.now += timedelta(minutes=10)
    third = await service.push(_identity())

    assert second.last_synced_at >= first.last_synced_at
    assert third.last_synced_at > second.last_synced_at


@pytest.mark.asyncio
async def test_pull_without_remote_document_leaves_local_untouched() -> None:
    area = StorageArea(initial=_SAMPLE)
    service = SyncService(area.context(), MemoryRemoteStore())

    assert await service.pull(_identity()) is False
    assert area.snapshot() == _SAMPLE


@pytest.mark.asyncio
async def test_pull_is_idempotent_and_overwrites_local_edits() -> None:
    remote = MemoryRemoteStore()
    await SyncService(StorageArea(initial=_SAMPLE).context(), remote).push(_identity())

    area = StorageArea(initial={Category.CUSTOM_UNITS.key: '{"local":{"id":"local"}}'})
    service = SyncService(area.context(), remote)
    await service.pull(_identity())
    first = area.snapshot()
    await service.pull(_identity())

    assert area.snapshot() == first == _SAMPLE


@pytest.mark.asyncio
async def test_pull_rejects_malformed_remote_document() -> None:
    remote = MemoryRemoteStore()
    await remote.commit(_identity(), [DocumentWrite.set("syncedData", {"customUnits": {}, "lastSynced": "yesterday"})])
    area = StorageArea(initial=_SAMPLE)

    with pytest.raises(RemoteStoreError):
        await SyncService(area.context(), remote).pull(_identity())

    assert area.snapshot() == _SAMPLE


@pytest.mark.asyncio
async def test_remote_failure_propagates_and_next_push_retries() -> None:
    remote = MemoryRemoteStore()
    service = SyncService(StorageArea(initial=_SAMPLE).context(), remote)
    remote.fail_next(ConnectionError("offline"))

    with pytest.raises(RemoteStoreError) as excinfo:
        await service.push(_identity())
    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert remote.documents("user-1") == {}

    await service.push(_identity())
    assert "syncedData" in remote.documents("user-1")


@pytest.mark.asyncio
async def test_concurrent_pushes_for_one_identity_never_overlap() -> None:
    remote = MemoryRemoteStore(latency=0.02)
    service = SyncService(StorageArea(initial=_SAMPLE).context(), remote)

    pushes = [asyncio.create_task(service.push(_identity())) for _ in range(4)]
    await asyncio.sleep(0.005)
    assert service.in_flight(_identity()) is True
    await asyncio.gather(*pushes)

    assert remote.commit_count == 4
    assert remote.max_concurrent_commits == 1
    assert service.in_flight(_identity()) is False


@pytest.mark.asyncio
async def test_finished_operations_release_per_identity_state() -> None:
    remote = MemoryRemoteStore(latency=0.01)
    service = SyncService(StorageArea(initial=_SAMPLE).context(), remote)

    await asyncio.gather(service.push(_identity("user-1")), service.push(_identity("user-2")))
    await service.pull(_identity("user-2"))
    assert service._locks == {}  # type: ignore[attr-defined]

    await service.clear(_identity("user-1"))
    await service.clear(_identity("user-2"))
    assert service._locks == {}  # type: ignore[attr-defined]
    assert service._last_pushed == {}  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_clear_deletes_every_document() -> None:
    remote = MemoryRemoteStore()
    service = SyncService(StorageArea(initial=_SAMPLE).context(), remote)
    await service.push(_identity())

    await service.clear(_identity())

    assert remote.documents("user-1") == {}
    assert await service.has_remote_data(_identity()) is False


def test_all_categories_are_covered_by_sample() -> None:
    assert {category.key for category in ALL_CATEGORIES} == set(_SAMPLE)
