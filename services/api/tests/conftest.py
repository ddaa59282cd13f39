"""
Shared fixtures: both storage backends on a fresh temp directory.
"""
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adapters.json import JsonAdapter
from adapters.sqlite import SqliteAdapter
from core.device_storage import DeviceStorage
from core.identity import LocalIdentityStore


@pytest.fixture
def json_store(tmp_path):
    return JsonAdapter(str(tmp_path / "json"))


@pytest.fixture
def sqlite_store(tmp_path):
    return SqliteAdapter.from_url(f"sqlite:///{tmp_path / 'workspace.db'}")


@pytest.fixture(params=["sqlite", "json"])
def store(request, tmp_path):
    if request.param == "sqlite":
        return SqliteAdapter.from_url(f"sqlite:///{tmp_path / 'workspace.db'}")
    return JsonAdapter(str(tmp_path / "json"))


@pytest.fixture
def device(tmp_path):
    return DeviceStorage(str(tmp_path / "device.json"))


@pytest.fixture
def identity_store(device):
    return LocalIdentityStore(device)
