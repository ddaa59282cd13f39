"""
Access control: (identity, project) -> role -> capability decision.

Rules:
- Guest identity: role is `owner` iff project.guest_ref == guest id, else none.
- Account identity: role comes from the membership row only. owner_ref on the
  project grants nothing by itself.
- A project that breaks the single-owner rule is inaccessible to everyone.
- An open document (is_open) can be read by anyone who knows the project id;
  it never widens any other capability.

`authorize` returns a decision and never raises; guarded operations call
`decision.raise_if_denied()` before touching the store.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from adapters.base import StorageAdapter
from core.errors import AccessDenied, OwnershipInvariantViolation
from core.ownership import Identity, check_ownership
from models import Document, Role
from models.converters import membership_from_row, project_from_row

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    READ_PROJECT = "read project"
    READ_DOCUMENT = "read document"
    WRITE_TEXT = "write text content"
    WRITE_DRAWING = "write drawing content"
    CREATE_DOCUMENT = "create document"
    DELETE_DOCUMENT = "delete document"
    SET_DOCUMENT_VISIBILITY = "manage document visibility"
    MANAGE_MEMBERS = "manage membership"
    RENAME_PROJECT = "rename project"
    DELETE_PROJECT = "delete project"


ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.OWNER: frozenset(Capability),
    Role.EDITOR: frozenset({
        Capability.READ_PROJECT,
        Capability.READ_DOCUMENT,
        Capability.WRITE_TEXT,
        Capability.CREATE_DOCUMENT,
    }),
    # viewers read closed documents only through is_open
    Role.VIEWER: frozenset({
        Capability.READ_PROJECT,
    }),
}


def role_allows(role: Optional[Role], capability: Capability) -> bool:
    if role is None:
        return False
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def permission_summary(role: Optional[Role]) -> Dict[str, bool]:
    """Capability -> allowed, for UI hints. Not a substitute for authorize()."""
    return {cap.value: role_allows(role, cap) for cap in Capability}


@dataclass(frozen=True)
class AccessDecision:
    project_id: str
    capability: Capability
    role: Optional[Role]
    allowed: bool
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.allowed

    @property
    def denial(self) -> Optional[AccessDenied]:
        if self.allowed:
            return None
        return AccessDenied(self.project_id, self.capability.value, self.reason or "no access")

    def raise_if_denied(self) -> "AccessDecision":
        if not self.allowed:
            raise self.denial
        return self


class AccessControl:
    def __init__(self, store: StorageAdapter):
        self.store = store

    def resolve_role(self, identity: Optional[Identity], project_id: str) -> Optional[Role]:
        """Effective role, or None for no access (including corrupt projects)."""
        role, _ = self._resolve(identity, project_id)
        return role

    def _resolve(self, identity: Optional[Identity], project_id: str):
        """(role, reason-when-None)."""
        row = self.store.get_project(project_id)
        if not row:
            return None, "project not found"
        try:
            project = check_ownership(project_from_row(row))
        except OwnershipInvariantViolation:
            return None, "project ownership is inconsistent"

        if identity is None:
            return None, "no identity"

        if identity.is_guest:
            if project.guest_ref is not None and project.guest_ref == identity.id:
                return Role.OWNER, ""
            return None, "not the guest owner"

        membership_row = self.store.get_membership(project_id, identity.id)
        membership = membership_from_row(membership_row) if membership_row else None
        if membership is None:
            return None, "not a member"
        return membership.role, ""

    def authorize(
        self,
        identity: Optional[Identity],
        project_id: str,
        capability: Capability,
        document: Optional[Document] = None,
    ) -> AccessDecision:
        capability = Capability(capability)

        if document is not None and document.project_id != project_id:
            return self._deny(project_id, capability, None, "document belongs to another project")

        role, reason = self._resolve(identity, project_id)

        if reason in ("project not found", "project ownership is inconsistent"):
            return self._deny(project_id, capability, None, reason)

        if capability == Capability.MANAGE_MEMBERS and identity is not None and identity.is_guest:
            # guest projects carry no accounts until claimed
            return self._deny(project_id, capability, role, "sign in to manage members")

        if role_allows(role, capability):
            return AccessDecision(project_id, capability, role, True)

        if capability == Capability.READ_DOCUMENT and document is not None and document.is_open:
            return AccessDecision(project_id, capability, role, True, "open document")

        return self._deny(project_id, capability, role, reason or f"role {role.value} lacks {capability.value}")

    @staticmethod
    def _deny(project_id: str, capability: Capability, role: Optional[Role], reason: str) -> AccessDecision:
        logger.info(f"[ACCESS] denied {capability.value} on {project_id}: {reason}")
        return AccessDecision(project_id, capability, role, False, reason)
