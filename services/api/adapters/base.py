"""
Storage adapter interface for the workspace service.
Defines the contract that all storage backends must implement.
"""

from typing import Protocol, List, Dict, Any, Optional, Tuple


class StorageAdapter(Protocol):
    """
    Protocol defining the interface for all storage adapters.

    This allows swapping between SQLite/Postgres (SQLAlchemy) and JSON files
    without changing the core or router code.

    NOTE:
    - Rows are plain dicts; core converts them with models.converters.
    - `claim_project` MUST be a conditional update (compare-and-set).
      It is the only thing that keeps concurrent claims from different
      tabs/devices from transferring a project twice.
    """

    # ========== Projects ==========

    def create_project(
        self,
        project_id: str,
        name: str,
        owner_ref: Optional[str] = None,
        guest_ref: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Insert a project row with exactly one of owner_ref / guest_ref.

        When owner_ref is set, an `owner` membership for that account is
        inserted in the same transaction.

        Raises:
            ValueError("OWNERSHIP_REFS_INVALID") if both or neither ref is given.
        """
        ...

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a project row, or None."""
        ...

    def list_projects_by_guest(self, guest_id: str) -> List[Dict[str, Any]]:
        """All projects whose guest_ref equals guest_id, newest first."""
        ...

    def list_projects_for_account(self, account_id: str) -> List[Dict[str, Any]]:
        """
        Projects the account holds a membership on, newest first.
        Each row carries an extra `role` key from the membership.
        """
        ...

    def find_unclaimed_projects(self, guest_id: str) -> List[Dict[str, Any]]:
        """Projects with guest_ref == guest_id AND owner_ref IS NULL."""
        ...

    def list_projects_missing_owner_membership(self, account_id: str) -> List[Dict[str, Any]]:
        """
        Projects with owner_ref == account_id that have no `owner`
        membership row for that account.
        """
        ...

    def claim_project(self, project_id: str, account_id: str, expected_guest_ref: str) -> bool:
        """
        Compare-and-set ownership transfer:

            UPDATE projects SET owner_ref = :account_id, guest_ref = NULL
            WHERE project_id = :project_id
              AND owner_ref IS NULL
              AND guest_ref = :expected_guest_ref

        Returns:
            True iff this call updated the row.
        """
        ...

    def update_project(self, project_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Update mutable project fields (only `name`).
        Ownership refs are never updated through here.

        Returns:
            Updated row, or None if not found.
        """
        ...

    def delete_project(self, project_id: str) -> bool:
        """Delete a project with its documents and memberships."""
        ...

    # ========== Documents ==========

    def create_document(
        self,
        project_id: str,
        title: str,
        document_type: str = "text",
        is_open: bool = False,
    ) -> Dict[str, Any]:
        """
        Insert a document, assigning document_number = max(project) + 1.

        Raises:
            ValueError("PROJECT_NOT_FOUND") if the project does not exist.
        """
        ...

    def get_document(self, project_id: str, document_number: int) -> Optional[Dict[str, Any]]:
        ...

    def list_documents(self, project_id: str) -> List[Dict[str, Any]]:
        """Documents of a project ordered by document_number."""
        ...

    def update_document(
        self,
        project_id: str,
        document_number: int,
        updates: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Overwrite only the provided keys among
        title, is_open, text_content, drawing_content.
        """
        ...

    def delete_document(self, project_id: str, document_number: int) -> bool:
        ...

    # ========== Memberships ==========

    def get_membership(self, project_id: str, account_id: str) -> Optional[Dict[str, Any]]:
        ...

    def list_memberships(self, project_id: str) -> List[Dict[str, Any]]:
        """Memberships of a project (oldest first) joined with account email/display_name."""
        ...

    def insert_membership_if_absent(
        self,
        project_id: str,
        account_id: str,
        role: str,
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Insert a membership unless one exists for (project_id, account_id).

        Returns:
            (row, created) - the existing row is returned untouched when present.
        """
        ...

    def update_membership_role(
        self,
        project_id: str,
        account_id: str,
        role: str,
        keep_last_owner: bool = True,
    ) -> Optional[Dict[str, Any]]:
        """
        Change a member's role. Returns None if the membership does not exist.

        Raises:
            ValueError("LAST_OWNER") when keep_last_owner is set and this
            would demote the only owner of the project.
        """
        ...

    def delete_membership(
        self,
        project_id: str,
        account_id: str,
        keep_last_owner: bool = True,
    ) -> bool:
        """
        Remove a membership. Returns False if it did not exist.

        Raises:
            ValueError("LAST_OWNER") when keep_last_owner is set and this
            would remove the only owner of the project.
        """
        ...

    # ========== Accounts (profiles) ==========

    def upsert_account(
        self,
        account_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        ...

    def get_account(self, account_id: str) -> Optional[Dict[str, Any]]:
        ...

    def find_account_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Case-insensitive lookup by email."""
        ...
