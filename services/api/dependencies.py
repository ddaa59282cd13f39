"""
DI helpers shared by main.py and routers/*.

One process is one device: the storage adapter, identity store, auth bus and
session coordinator are built lazily once and reused by every request.
Tests replace them through app.dependency_overrides or reset_dependencies().
"""
from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import Depends

from adapters.base import StorageAdapter
from core.claim import ClaimEngine
from core.device_storage import DeviceStorage
from core.identity import LocalIdentityStore
from core.ownership import Identity
from core.session import AuthEventBus, SessionCoordinator
from core.workspace import WorkspaceService
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

_storage_adapter: Optional[StorageAdapter] = None
_identity_store: Optional[LocalIdentityStore] = None
_auth_bus: Optional[AuthEventBus] = None
_coordinator: Optional[SessionCoordinator] = None


def build_storage_adapter(settings: Settings) -> StorageAdapter:
    backend = settings.storage_backend.lower()
    logger.info(f"🔧 Storage Backend: {backend.upper()}")

    if backend == "sqlite":
        from adapters.sqlite import SqliteAdapter

        return SqliteAdapter.from_url(settings.db_url)
    if backend == "json":
        from adapters.json import JsonAdapter

        return JsonAdapter(settings.json_data_dir)
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.storage_backend}")


def get_storage_adapter() -> StorageAdapter:
    global _storage_adapter
    if _storage_adapter is None:
        _storage_adapter = build_storage_adapter(get_settings())
    return _storage_adapter


def get_identity_store() -> LocalIdentityStore:
    global _identity_store
    if _identity_store is None:
        settings = get_settings()
        _identity_store = LocalIdentityStore(
            DeviceStorage(settings.device_storage_path),
            guest_id_prefix=settings.guest_id_prefix,
        )
    return _identity_store


def get_auth_bus() -> AuthEventBus:
    global _auth_bus
    if _auth_bus is None:
        _auth_bus = AuthEventBus()
    return _auth_bus


def get_session_coordinator() -> SessionCoordinator:
    global _coordinator
    if _coordinator is None:
        store = get_storage_adapter()
        bus = get_auth_bus()
        coordinator = SessionCoordinator(
            identity_store=get_identity_store(),
            claim_engine=ClaimEngine(store),
            store=store,
            dedupe_seconds=get_settings().claim_dedupe_seconds,
        )
        coordinator.load(bus)
        coordinator.attach(bus)
        _coordinator = coordinator
    return _coordinator


def reset_dependencies() -> None:
    """Drop every cached singleton (tests / settings reload)."""
    global _storage_adapter, _identity_store, _auth_bus, _coordinator
    if _coordinator is not None:
        _coordinator.detach()
    _storage_adapter = None
    _identity_store = None
    _auth_bus = None
    _coordinator = None


def get_workspace(store: Annotated[StorageAdapter, Depends(get_storage_adapter)]) -> WorkspaceService:
    return WorkspaceService(store)


def get_current_identity(
    coordinator: Annotated[SessionCoordinator, Depends(get_session_coordinator)],
) -> Optional[Identity]:
    return coordinator.current_identity()


# ---- DI aliases (no default value allowed) ----
Workspace = Annotated[WorkspaceService, Depends(get_workspace)]
CurrentIdentity = Annotated[Optional[Identity], Depends(get_current_identity)]
Coordinator = Annotated[SessionCoordinator, Depends(get_session_coordinator)]
IdentityStore = Annotated[LocalIdentityStore, Depends(get_identity_store)]
Bus = Annotated[AuthEventBus, Depends(get_auth_bus)]
