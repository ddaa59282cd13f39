"""
Local identity store: the device's anonymous (guest) identifier plus the
"last visited" pointer.

Rules:
- The guest id is generated once (uuid4, i.e. os.urandom backed) and never
  regenerated while the stored value is present.
- After the device completes its first authenticated sign-in the guest id is
  *retired*: it stays in storage (claims may still need to be retried with it)
  but can no longer be used to scope new resources.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import uuid4

from core.device_storage import DeviceStorage, optional_str
from core.errors import GuestIdentityRetired

logger = logging.getLogger(__name__)

GUEST_ID_KEY = "guest_id"
AUTHENTICATED_ONCE_KEY = "authenticated_once"
LAST_VISITED_KEY = "last_visited"


@dataclass(frozen=True)
class LastVisited:
    project_id: str
    document_number: Optional[int] = None


class LocalIdentityStore:
    def __init__(self, storage: DeviceStorage, guest_id_prefix: str = "guest_"):
        self.storage = storage
        self.guest_id_prefix = guest_id_prefix

    # ---------- guest identity ----------

    @property
    def is_retired(self) -> bool:
        return bool(self.storage.get(AUTHENTICATED_ONCE_KEY, False))

    def peek_guest_id(self) -> Optional[str]:
        """Stored guest id, if any. Never creates one; works after retirement."""
        return optional_str(self.storage.get(GUEST_ID_KEY))

    def get_or_create_guest_id(self) -> str:
        """
        Return this device's guest id, creating and persisting it on first use.

        Raises:
            GuestIdentityRetired: the device has already signed in once.
        """
        if self.is_retired:
            raise GuestIdentityRetired()

        existing = self.peek_guest_id()
        if existing:
            return existing

        candidate = f"{self.guest_id_prefix}{uuid4()}"
        stored = self.storage.set_if_absent(GUEST_ID_KEY, candidate)
        if stored == candidate:
            logger.info("Issued new guest identity for this device")
        return str(stored)

    def retire_guest_identity(self) -> None:
        """Mark the device as having completed an authenticated sign-in."""
        if not self.is_retired:
            self.storage.set(AUTHENTICATED_ONCE_KEY, True)
            logger.info("Guest identity retired after first sign-in")

    # ---------- last visited ----------

    def _last_visited_blob(self) -> Dict[str, Any]:
        blob = self.storage.get(LAST_VISITED_KEY) or {}
        return blob if isinstance(blob, dict) else {}

    def get_last_visited(self) -> Optional[LastVisited]:
        blob = self._last_visited_blob()
        project_id = optional_str(blob.get("lastProjectId"))
        if not project_id:
            return None
        number = blob.get("lastDocumentNumber")
        try:
            number = int(number) if number is not None else None
        except (TypeError, ValueError):
            number = None
        return LastVisited(project_id=project_id, document_number=number)

    def get_last_document_for_project(self, project_id: str) -> Optional[int]:
        projects = self._last_visited_blob().get("projects") or {}
        value = projects.get(project_id) if isinstance(projects, dict) else None
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    def set_last_visited(self, project_id: str, document_number: Optional[int] = None) -> None:
        blob = self._last_visited_blob()
        projects = blob.get("projects")
        if not isinstance(projects, dict):
            projects = {}
        if document_number is not None:
            projects[project_id] = int(document_number)
        blob["projects"] = projects
        blob["lastProjectId"] = project_id
        blob["lastDocumentNumber"] = document_number
        self.storage.set(LAST_VISITED_KEY, blob)
