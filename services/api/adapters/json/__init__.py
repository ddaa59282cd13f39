"""
JSON file storage adapter for the workspace service.
Simple file-based storage for quick demos and testing.

Every operation runs under one process-wide lock, so compare-and-set
(claim_project) and insert-if-absent are atomic within this process.
Not suitable for several processes sharing the same directory.
"""
import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JsonAdapter:
    """
    JSON file-based storage adapter.
    Stores each table in its own JSON file under the data directory.
    Uses atomic file replacement for basic consistency.
    """

    def __init__(self, data_dir: str = "data/json"):
        """
        Initialize the JSON adapter.

        Args:
            data_dir: Directory to store JSON files
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

        # File paths
        self.projects_file = self.data_dir / "projects.json"
        self.documents_file = self.data_dir / "documents.json"
        self.memberships_file = self.data_dir / "project_members.json"
        self.accounts_file = self.data_dir / "accounts.json"

        # Initialize files if they don't exist
        for file in [self.projects_file, self.documents_file, self.memberships_file, self.accounts_file]:
            if not file.exists():
                self._write_file(file, [])

    def _read_file(self, filepath: Path) -> List[Dict[str, Any]]:
        """Read and parse a JSON file."""
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                return json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            return []

    def _write_file(self, filepath: Path, data: List[Dict[str, Any]]) -> None:
        """Write data to a JSON file atomically."""
        # Write to temporary file first
        tmp_file = filepath.with_suffix(".tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)

        # Atomic rename
        tmp_file.replace(filepath)

    @staticmethod
    def _newest_first(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return sorted(rows, key=lambda r: r.get("created_at") or "", reverse=True)

    # ========== Projects ==========

    def create_project(
        self,
        project_id: str,
        name: str,
        owner_ref: Optional[str] = None,
        guest_ref: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a project (and the owner membership for account projects)."""
        if (owner_ref is None) == (guest_ref is None):
            raise ValueError("OWNERSHIP_REFS_INVALID")

        now = _now()
        row = {
            "project_id": project_id,
            "name": name,
            "owner_ref": owner_ref,
            "guest_ref": guest_ref,
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            rows = self._read_file(self.projects_file)
            if any(p["project_id"] == project_id for p in rows):
                raise ValueError("PROJECT_EXISTS")
            rows.append(row)
            if owner_ref is not None:
                members = self._read_file(self.memberships_file)
                members.append({
                    "project_id": project_id,
                    "account_id": owner_ref,
                    "role": "owner",
                    "created_at": now,
                    "updated_at": now,
                })
                self._write_file(self.memberships_file, members)
            self._write_file(self.projects_file, rows)
        return dict(row)

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            rows = self._read_file(self.projects_file)
        return next((dict(p) for p in rows if p["project_id"] == project_id), None)

    def list_projects_by_guest(self, guest_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._read_file(self.projects_file)
        return self._newest_first([p for p in rows if p.get("guest_ref") == guest_id])

    def list_projects_for_account(self, account_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._read_file(self.projects_file)
            members = self._read_file(self.memberships_file)
        roles = {m["project_id"]: m["role"] for m in members if m["account_id"] == account_id}
        out = [dict(p, role=roles[p["project_id"]]) for p in rows if p["project_id"] in roles]
        return self._newest_first(out)

    def find_unclaimed_projects(self, guest_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._read_file(self.projects_file)
        out = [p for p in rows if p.get("guest_ref") == guest_id and p.get("owner_ref") is None]
        return sorted(out, key=lambda r: r.get("created_at") or "")

    def list_projects_missing_owner_membership(self, account_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._read_file(self.projects_file)
            members = self._read_file(self.memberships_file)
        owned = {
            m["project_id"] for m in members
            if m["account_id"] == account_id and m["role"] == "owner"
        }
        return [p for p in rows if p.get("owner_ref") == account_id and p["project_id"] not in owned]

    def claim_project(self, project_id: str, account_id: str, expected_guest_ref: str) -> bool:
        """Compare-and-set transfer; only the first caller seeing owner_ref=None wins."""
        with self._lock:
            rows = self._read_file(self.projects_file)
            project = next((p for p in rows if p["project_id"] == project_id), None)
            if (
                project is None
                or project.get("owner_ref") is not None
                or project.get("guest_ref") != expected_guest_ref
            ):
                return False
            project["owner_ref"] = account_id
            project["guest_ref"] = None
            project["updated_at"] = _now()
            self._write_file(self.projects_file, rows)
            return True

    def update_project(self, project_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            rows = self._read_file(self.projects_file)
            project = next((p for p in rows if p["project_id"] == project_id), None)
            if project is None:
                return None
            if "name" in updates:
                project["name"] = updates["name"]
                project["updated_at"] = _now()
                self._write_file(self.projects_file, rows)
            return dict(project)

    def delete_project(self, project_id: str) -> bool:
        with self._lock:
            rows = self._read_file(self.projects_file)
            kept = [p for p in rows if p["project_id"] != project_id]
            if len(kept) == len(rows):
                return False
            docs = self._read_file(self.documents_file)
            members = self._read_file(self.memberships_file)
            self._write_file(self.documents_file, [d for d in docs if d["project_id"] != project_id])
            self._write_file(self.memberships_file, [m for m in members if m["project_id"] != project_id])
            self._write_file(self.projects_file, kept)
            return True

    # ========== Documents ==========

    def create_document(
        self,
        project_id: str,
        title: str,
        document_type: str = "text",
        is_open: bool = False,
    ) -> Dict[str, Any]:
        """Create a document with the next per-project document_number."""
        now = _now()
        with self._lock:
            if not any(p["project_id"] == project_id for p in self._read_file(self.projects_file)):
                raise ValueError("PROJECT_NOT_FOUND")

            docs = self._read_file(self.documents_file)
            numbers = [int(d["document_number"]) for d in docs if d["project_id"] == project_id]
            row = {
                "document_id": str(uuid.uuid4()),
                "project_id": project_id,
                "document_number": max(numbers, default=0) + 1,
                "title": title,
                "document_type": document_type,
                "is_open": bool(is_open),
                "text_content": None,
                "drawing_content": None,
                "created_at": now,
                "updated_at": now,
            }
            docs.append(row)
            self._write_file(self.documents_file, docs)
        return dict(row)

    def get_document(self, project_id: str, document_number: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            docs = self._read_file(self.documents_file)
        return next(
            (
                dict(d) for d in docs
                if d["project_id"] == project_id and int(d["document_number"]) == int(document_number)
            ),
            None,
        )

    def list_documents(self, project_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            docs = self._read_file(self.documents_file)
        out = [d for d in docs if d["project_id"] == project_id]
        out.sort(key=lambda d: int(d["document_number"]))
        return out

    def update_document(
        self,
        project_id: str,
        document_number: int,
        updates: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            docs = self._read_file(self.documents_file)
            doc = next(
                (
                    d for d in docs
                    if d["project_id"] == project_id and int(d["document_number"]) == int(document_number)
                ),
                None,
            )
            if doc is None:
                return None
            changed = False
            for key in ("title", "is_open", "text_content", "drawing_content"):
                if key in updates:
                    doc[key] = updates[key]
                    changed = True
            if changed:
                doc["updated_at"] = _now()
                self._write_file(self.documents_file, docs)
            return dict(doc)

    def delete_document(self, project_id: str, document_number: int) -> bool:
        with self._lock:
            docs = self._read_file(self.documents_file)
            kept = [
                d for d in docs
                if not (d["project_id"] == project_id and int(d["document_number"]) == int(document_number))
            ]
            if len(kept) == len(docs):
                return False
            self._write_file(self.documents_file, kept)
            return True

    # ========== Memberships ==========

    def get_membership(self, project_id: str, account_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            members = self._read_file(self.memberships_file)
        return next(
            (dict(m) for m in members if m["project_id"] == project_id and m["account_id"] == account_id),
            None,
        )

    def list_memberships(self, project_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            members = self._read_file(self.memberships_file)
            profiles = {a["account_id"]: a for a in self._read_file(self.accounts_file)}
        out = []
        for m in members:
            if m["project_id"] != project_id:
                continue
            profile = profiles.get(m["account_id"], {})
            out.append(dict(m, email=profile.get("email"), display_name=profile.get("display_name")))
        out.sort(key=lambda r: r.get("created_at") or "")
        return out

    def insert_membership_if_absent(
        self,
        project_id: str,
        account_id: str,
        role: str,
    ) -> Tuple[Dict[str, Any], bool]:
        with self._lock:
            members = self._read_file(self.memberships_file)
            existing = next(
                (m for m in members if m["project_id"] == project_id and m["account_id"] == account_id),
                None,
            )
            if existing:
                return dict(existing), False
            now = _now()
            row = {
                "project_id": project_id,
                "account_id": account_id,
                "role": role,
                "created_at": now,
                "updated_at": now,
            }
            members.append(row)
            self._write_file(self.memberships_file, members)
            return dict(row), True

    def _owner_count(self, members: List[Dict[str, Any]], project_id: str) -> int:
        return sum(1 for m in members if m["project_id"] == project_id and m["role"] == "owner")

    def update_membership_role(
        self,
        project_id: str,
        account_id: str,
        role: str,
        keep_last_owner: bool = True,
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            members = self._read_file(self.memberships_file)
            current = next(
                (m for m in members if m["project_id"] == project_id and m["account_id"] == account_id),
                None,
            )
            if current is None:
                return None
            if (
                keep_last_owner
                and current["role"] == "owner"
                and role != "owner"
                and self._owner_count(members, project_id) <= 1
            ):
                raise ValueError("LAST_OWNER")
            current["role"] = role
            current["updated_at"] = _now()
            self._write_file(self.memberships_file, members)
            return dict(current)

    def delete_membership(
        self,
        project_id: str,
        account_id: str,
        keep_last_owner: bool = True,
    ) -> bool:
        with self._lock:
            members = self._read_file(self.memberships_file)
            current = next(
                (m for m in members if m["project_id"] == project_id and m["account_id"] == account_id),
                None,
            )
            if current is None:
                return False
            if keep_last_owner and current["role"] == "owner" and self._owner_count(members, project_id) <= 1:
                raise ValueError("LAST_OWNER")
            members.remove(current)
            self._write_file(self.memberships_file, members)
            return True

    # ========== Accounts ==========

    def upsert_account(
        self,
        account_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        now = _now()
        with self._lock:
            rows = self._read_file(self.accounts_file)
            row = next((a for a in rows if a["account_id"] == account_id), None)
            if row is None:
                row = {
                    "account_id": account_id,
                    "email": None,
                    "display_name": None,
                    "created_at": now,
                }
                rows.append(row)
            if email is not None:
                row["email"] = email.strip()
            if display_name is not None:
                row["display_name"] = display_name
            row["updated_at"] = now
            self._write_file(self.accounts_file, rows)
            return dict(row)

    def get_account(self, account_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            rows = self._read_file(self.accounts_file)
        return next((dict(a) for a in rows if a["account_id"] == account_id), None)

    def find_account_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        needle = (email or "").strip().lower()
        if not needle:
            return None
        with self._lock:
            rows = self._read_file(self.accounts_file)
        return next((dict(a) for a in rows if (a.get("email") or "").lower() == needle), None)
