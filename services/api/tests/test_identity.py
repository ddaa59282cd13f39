"""
Tests for device storage and the local identity store.

Run with: pytest tests/test_identity.py -v
"""
import pytest

from core.device_storage import DeviceStorage
from core.errors import GuestIdentityRetired
from core.identity import LastVisited, LocalIdentityStore


class TestGuestIdentity:
    """Guest id lifecycle on one device."""

    def test_created_once(self, identity_store):
        first = identity_store.get_or_create_guest_id()
        assert first.startswith("guest_")
        assert identity_store.get_or_create_guest_id() == first

    def test_survives_reload(self, tmp_path):
        """A new store over the same file sees the same id."""
        path = str(tmp_path / "device.json")
        first = LocalIdentityStore(DeviceStorage(path)).get_or_create_guest_id()
        assert LocalIdentityStore(DeviceStorage(path)).get_or_create_guest_id() == first

    def test_ids_differ_between_devices(self, tmp_path):
        a = LocalIdentityStore(DeviceStorage(str(tmp_path / "a.json"))).get_or_create_guest_id()
        b = LocalIdentityStore(DeviceStorage(str(tmp_path / "b.json"))).get_or_create_guest_id()
        assert a != b

    def test_cleared_storage_issues_new_id(self, identity_store, device):
        first = identity_store.get_or_create_guest_id()
        device.clear()
        assert identity_store.get_or_create_guest_id() != first

    def test_peek_never_creates(self, identity_store):
        assert identity_store.peek_guest_id() is None
        assert identity_store.peek_guest_id() is None

    def test_retired_raises(self, identity_store):
        guest_id = identity_store.get_or_create_guest_id()
        identity_store.retire_guest_identity()

        assert identity_store.is_retired
        with pytest.raises(GuestIdentityRetired):
            identity_store.get_or_create_guest_id()
        # still readable for claim retries
        assert identity_store.peek_guest_id() == guest_id

    def test_retired_without_guest_id(self, identity_store):
        """A device that signs in before ever being a guest never gets one."""
        identity_store.retire_guest_identity()
        with pytest.raises(GuestIdentityRetired):
            identity_store.get_or_create_guest_id()
        assert identity_store.peek_guest_id() is None

    def test_custom_prefix(self, device):
        store = LocalIdentityStore(device, guest_id_prefix="anon-")
        assert store.get_or_create_guest_id().startswith("anon-")


class TestLastVisited:
    def test_empty(self, identity_store):
        assert identity_store.get_last_visited() is None
        assert identity_store.get_last_document_for_project("p-1") is None

    def test_round_trip(self, identity_store):
        identity_store.set_last_visited("p-1", 3)
        identity_store.set_last_visited("p-2", 1)

        assert identity_store.get_last_visited() == LastVisited("p-2", 1)
        assert identity_store.get_last_document_for_project("p-1") == 3
        assert identity_store.get_last_document_for_project("p-2") == 1

    def test_project_without_document(self, identity_store):
        identity_store.set_last_visited("p-1")
        assert identity_store.get_last_visited() == LastVisited("p-1", None)

    def test_garbage_blob_ignored(self, identity_store, device):
        device.set("last_visited", "not-a-dict")
        assert identity_store.get_last_visited() is None
        identity_store.set_last_visited("p-1", 2)
        assert identity_store.get_last_visited() == LastVisited("p-1", 2)


class TestDeviceStorage:
    def test_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "device.json"
        path.write_text("{not json", encoding="utf-8")
        storage = DeviceStorage(str(path))

        assert storage.get("guest_id") is None
        storage.set("guest_id", "guest_x")
        assert storage.get("guest_id") == "guest_x"

    def test_set_if_absent(self, device):
        assert device.set_if_absent("k", "first") == "first"
        assert device.set_if_absent("k", "second") == "first"

    def test_delete(self, device):
        device.set("k", 1)
        device.delete("k")
        assert device.get("k") is None
