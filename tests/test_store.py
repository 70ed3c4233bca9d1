"""
Unit tests for volume record stores.

Tests the in-memory and JSON file stores against the same contract,
plus the file store's on-disk behaviour.
"""

import pytest

from fusevol.errors import (
    InvalidRequestError,
    StoreError,
    VolumeAlreadyExistsError,
    VolumeNotFoundError,
)
from fusevol.store.volumes import (
    FileVolumeStore,
    MemoryVolumeStore,
    create_volume_store,
)
from fusevol.types import Volume, VolumeLocator


@pytest.fixture(params=["memory", "file"])
def any_store(request, store_dir):
    """Each store implementation in turn."""
    if request.param == "memory":
        return MemoryVolumeStore()
    return FileVolumeStore(str(store_dir))


def _volume(volume_id: str = "vol-1", **kwargs) -> Volume:
    return Volume(id=volume_id, device_path=f"/var/lib/fusevol/{volume_id}", **kwargs)


class TestStoreContract:
    """Behaviour shared by every store."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, any_store):
        await any_store.create(_volume(locator=VolumeLocator(name="alpha")))

        volume = await any_store.get("vol-1")

        assert volume.id == "vol-1"
        assert volume.locator.name == "alpha"
        assert volume.device_path == "/var/lib/fusevol/vol-1"

    @pytest.mark.asyncio
    async def test_create_duplicate(self, any_store):
        await any_store.create(_volume())

        with pytest.raises(VolumeAlreadyExistsError):
            await any_store.create(_volume())

    @pytest.mark.asyncio
    async def test_get_missing(self, any_store):
        with pytest.raises(VolumeNotFoundError):
            await any_store.get("vol-missing")

    @pytest.mark.asyncio
    async def test_update_replaces_record(self, any_store):
        await any_store.create(_volume())
        volume = await any_store.get("vol-1")
        volume.attach_path = ["/mnt/a"]

        await any_store.update(volume)

        assert (await any_store.get("vol-1")).attach_path == ["/mnt/a"]

    @pytest.mark.asyncio
    async def test_update_missing(self, any_store):
        with pytest.raises(VolumeNotFoundError):
            await any_store.update(_volume("vol-missing"))

    @pytest.mark.asyncio
    async def test_delete(self, any_store):
        await any_store.create(_volume())

        await any_store.delete("vol-1")

        with pytest.raises(VolumeNotFoundError):
            await any_store.get("vol-1")

    @pytest.mark.asyncio
    async def test_delete_missing(self, any_store):
        with pytest.raises(VolumeNotFoundError):
            await any_store.delete("vol-missing")

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, any_store):
        """Mutating a fetched record does not change the stored one."""
        await any_store.create(_volume())

        fetched = await any_store.get("vol-1")
        fetched.attach_path.append("/mnt/sneaky")

        assert (await any_store.get("vol-1")).attach_path == []

    @pytest.mark.asyncio
    async def test_list(self, any_store):
        await any_store.create(_volume("vol-1"))
        await any_store.create(_volume("vol-2"))

        volumes = await any_store.list()

        assert sorted(v.id for v in volumes) == ["vol-1", "vol-2"]


class TestMemoryVolumeStore:
    """Tests specific to the in-memory store."""

    @pytest.mark.asyncio
    async def test_stored_record_is_a_copy(self):
        store = MemoryVolumeStore()
        volume = _volume()
        await store.create(volume)

        volume.attach_path.append("/mnt/a")

        assert (await store.get("vol-1")).attach_path == []


class TestFileVolumeStore:
    """Tests specific to the JSON file store."""

    @pytest.mark.asyncio
    async def test_record_written_as_json(self, store_dir):
        store = FileVolumeStore(str(store_dir))

        await store.create(_volume())

        record = store_dir / "vol-1.json"
        assert record.exists()
        assert '"device_path": "/var/lib/fusevol/vol-1"' in record.read_text()
        assert list(store_dir.glob(".*.tmp")) == []

    @pytest.mark.asyncio
    async def test_records_survive_new_instance(self, store_dir):
        await FileVolumeStore(str(store_dir)).create(_volume())

        volume = await FileVolumeStore(str(store_dir)).get("vol-1")

        assert volume.id == "vol-1"

    @pytest.mark.asyncio
    async def test_corrupt_record(self, store_dir):
        store = FileVolumeStore(str(store_dir))
        store.initialize()
        (store_dir / "vol-bad.json").write_text("{not json")

        with pytest.raises(StoreError):
            await store.get("vol-bad")

    @pytest.mark.asyncio
    async def test_rejects_path_traversal(self, store_dir):
        store = FileVolumeStore(str(store_dir))

        with pytest.raises(InvalidRequestError):
            await store.get("../outside")

    def test_initialize_failure(self, temp_dir):
        blocker = temp_dir / "blocker"
        blocker.write_text("occupied")
        store = FileVolumeStore(str(blocker / "records"))

        with pytest.raises(StoreError):
            store.initialize()


class TestCreateVolumeStore:
    """Tests for the store factory."""

    def test_default_is_memory(self):
        assert isinstance(create_volume_store(), MemoryVolumeStore)

    def test_path_selects_file_store(self, store_dir):
        store = create_volume_store(str(store_dir))

        assert isinstance(store, FileVolumeStore)
        assert store.base_path == store_dir
