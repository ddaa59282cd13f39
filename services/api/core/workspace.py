"""
Workspace operations on projects, documents and members.

Every entry point takes the caller identity explicitly, authorizes first and
only then touches the store. The store's own filtering is never the gate.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from adapters.base import StorageAdapter
from core.access import AccessControl, Capability, permission_summary, role_allows
from core.errors import AccessDenied, Conflict, NotFound, OwnershipInvariantViolation
from core.ownership import Identity, check_ownership, ownership_refs_for
from models import Document, DocumentType, Membership, Project, Role, gen_project_id
from models.converters import document_from_row, membership_from_row, project_from_row

logger = logging.getLogger(__name__)


class WorkspaceService:
    def __init__(self, store: StorageAdapter, access: Optional[AccessControl] = None):
        self.store = store
        self.access = access or AccessControl(store)

    # ---------- helpers ----------

    def _require(
        self,
        identity: Optional[Identity],
        project_id: str,
        capability: Capability,
        document: Optional[Document] = None,
    ) -> Optional[Role]:
        return self.access.authorize(identity, project_id, capability, document).raise_if_denied().role

    def _load_document(
        self,
        identity: Optional[Identity],
        project_id: str,
        document_number: int,
        capability: Capability,
    ) -> Document:
        """Fetch a document and authorize `capability` on it."""
        row = self.store.get_document(project_id, document_number)
        if not row:
            # callers without a role get a denial, not an existence hint
            self._require(identity, project_id, Capability.READ_PROJECT)
            raise NotFound(f"Document {document_number} not found in project {project_id}")
        document = document_from_row(row)
        self._require(identity, project_id, capability, document)
        return document

    def _project_out(self, project: Project, role: Optional[Role]) -> Dict[str, Any]:
        out = project.to_api()
        out["role"] = role.value if role else None
        out["permissions"] = permission_summary(role)
        return out

    # ---------- projects ----------

    def create_project(self, identity: Optional[Identity], name: str) -> Dict[str, Any]:
        """
        Create a project scoped to the caller: account -> owner_ref (+ owner
        membership), guest -> guest_ref.
        """
        if identity is None:
            raise AccessDenied("", "create project", "sign in to create projects")
        owner_ref, guest_ref = ownership_refs_for(identity)
        row = self.store.create_project(gen_project_id(), name.strip(), owner_ref=owner_ref, guest_ref=guest_ref)
        project = project_from_row(row)
        logger.info(f"Created project {project.project_id} for {identity.kind.value}")
        return self._project_out(project, Role.OWNER)

    def list_projects(self, identity: Optional[Identity]) -> List[Dict[str, Any]]:
        """Projects visible to the caller, each with its resolved role."""
        if identity is None:
            return []
        if identity.is_guest:
            rows = self.store.list_projects_by_guest(identity.id)
        else:
            rows = self.store.list_projects_for_account(identity.id)

        out = []
        for row in rows:
            project = project_from_row(row)
            try:
                check_ownership(project)
            except OwnershipInvariantViolation:
                continue
            if identity.is_guest:
                # a claimed project keeps no guest_ref, so this only filters corrupt rows
                role = Role.OWNER if project.guest_ref == identity.id else None
            else:
                role = Role.parse(row.get("role"))
            if role is None:
                continue
            out.append(self._project_out(project, role))
        return out

    def get_project(self, identity: Optional[Identity], project_id: str) -> Dict[str, Any]:
        role = self._require(identity, project_id, Capability.READ_PROJECT)
        row = self.store.get_project(project_id)
        if not row:
            raise NotFound(f"Project {project_id} not found")
        return self._project_out(project_from_row(row), role)

    def rename_project(self, identity: Optional[Identity], project_id: str, name: str) -> Dict[str, Any]:
        role = self._require(identity, project_id, Capability.RENAME_PROJECT)
        row = self.store.update_project(project_id, {"name": name.strip()})
        if not row:
            raise NotFound(f"Project {project_id} not found")
        return self._project_out(project_from_row(row), role)

    def delete_project(self, identity: Optional[Identity], project_id: str) -> None:
        self._require(identity, project_id, Capability.DELETE_PROJECT)
        if not self.store.delete_project(project_id):
            raise NotFound(f"Project {project_id} not found")
        logger.info(f"Deleted project {project_id}")

    # ---------- documents ----------

    def create_document(
        self,
        identity: Optional[Identity],
        project_id: str,
        title: str,
        document_type: DocumentType = DocumentType.TEXT,
        is_open: bool = False,
    ) -> Dict[str, Any]:
        self._require(identity, project_id, Capability.CREATE_DOCUMENT)
        try:
            row = self.store.create_document(project_id, title.strip(), DocumentType(document_type).value, is_open)
        except ValueError as e:
            if "PROJECT_NOT_FOUND" in str(e):
                raise NotFound(f"Project {project_id} not found")
            if "DOCUMENT_NUMBER_CONFLICT" in str(e):
                raise Conflict("Could not assign a document number, try again")
            raise
        return document_from_row(row).to_api()

    def list_documents(self, identity: Optional[Identity], project_id: str) -> List[Dict[str, Any]]:
        """
        Owners/editors see every document; viewers and callers without a role
        only see open ones.
        """
        decision = self.access.authorize(identity, project_id, Capability.READ_PROJECT)
        if not decision.ok and decision.reason in ("project not found", "project ownership is inconsistent"):
            decision.raise_if_denied()

        docs = [document_from_row(r) for r in self.store.list_documents(project_id)]
        sees_closed = decision.ok and role_allows(decision.role, Capability.READ_DOCUMENT)
        return [d.to_api() for d in docs if sees_closed or d.is_open]

    def get_document(
        self,
        identity: Optional[Identity],
        project_id: str,
        document_number: int,
        include_content: bool = False,
    ) -> Dict[str, Any]:
        document = self._load_document(identity, project_id, document_number, Capability.READ_DOCUMENT)
        return document.to_api(include_content=include_content)

    def write_content(
        self,
        identity: Optional[Identity],
        project_id: str,
        document_number: int,
        text_content: Optional[str] = None,
        drawing_content: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Write text and/or drawing payloads. Each changed field needs its own
        capability and all checks run before anything is written.
        """
        if text_content is None and drawing_content is None:
            raise ValueError("Nothing to update")

        updates: Dict[str, Any] = {}
        if text_content is not None:
            self._load_document(identity, project_id, document_number, Capability.WRITE_TEXT)
            updates["text_content"] = text_content
        if drawing_content is not None:
            self._load_document(identity, project_id, document_number, Capability.WRITE_DRAWING)
            updates["drawing_content"] = drawing_content

        row = self.store.update_document(project_id, document_number, updates)
        if not row:
            raise NotFound(f"Document {document_number} not found in project {project_id}")
        return document_from_row(row).to_api(include_content=True)

    def set_document_open(
        self,
        identity: Optional[Identity],
        project_id: str,
        document_number: int,
        is_open: bool,
    ) -> Dict[str, Any]:
        self._load_document(identity, project_id, document_number, Capability.SET_DOCUMENT_VISIBILITY)
        row = self.store.update_document(project_id, document_number, {"is_open": bool(is_open)})
        if not row:
            raise NotFound(f"Document {document_number} not found in project {project_id}")
        return document_from_row(row).to_api()

    def delete_document(self, identity: Optional[Identity], project_id: str, document_number: int) -> None:
        self._load_document(identity, project_id, document_number, Capability.DELETE_DOCUMENT)
        if not self.store.delete_document(project_id, document_number):
            raise NotFound(f"Document {document_number} not found in project {project_id}")

    # ---------- members ----------

    def list_members(self, identity: Optional[Identity], project_id: str) -> List[Dict[str, Any]]:
        self._require(identity, project_id, Capability.READ_PROJECT)
        members: List[Membership] = []
        for row in self.store.list_memberships(project_id):
            m = membership_from_row(row)
            if m is not None:
                members.append(m)
        return [m.to_api() for m in members]

    def add_member(
        self,
        identity: Optional[Identity],
        project_id: str,
        role: Role,
        account_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Invite an account (by id or by profile email) with the given role."""
        self._require(identity, project_id, Capability.MANAGE_MEMBERS)
        role = Role(role)

        if not account_id:
            if not email:
                raise ValueError("account_id or email is required")
            profile = self.store.find_account_by_email(email)
            if not profile:
                raise NotFound(f"No account with email {email}")
            account_id = profile["account_id"]

        row, created = self.store.insert_membership_if_absent(project_id, account_id, role.value)
        if not created:
            raise Conflict(f"Account {account_id} is already a member of {project_id}")
        logger.info(f"Added {account_id} to {project_id} as {role.value}")
        return membership_from_row(row).to_api()

    def change_member_role(
        self,
        identity: Optional[Identity],
        project_id: str,
        account_id: str,
        role: Role,
    ) -> Dict[str, Any]:
        self._require(identity, project_id, Capability.MANAGE_MEMBERS)
        role = Role(role)
        try:
            row = self.store.update_membership_role(project_id, account_id, role.value)
        except ValueError as e:
            if "LAST_OWNER" in str(e):
                raise Conflict("A project must keep at least one owner")
            raise
        if not row:
            raise NotFound(f"Account {account_id} is not a member of {project_id}")
        return membership_from_row(row).to_api()

    def remove_member(self, identity: Optional[Identity], project_id: str, account_id: str) -> None:
        self._require(identity, project_id, Capability.MANAGE_MEMBERS)
        try:
            removed = self.store.delete_membership(project_id, account_id)
        except ValueError as e:
            if "LAST_OWNER" in str(e):
                raise Conflict("A project must keep at least one owner")
            raise
        if not removed:
            raise NotFound(f"Account {account_id} is not a member of {project_id}")
        logger.info(f"Removed {account_id} from {project_id}")
