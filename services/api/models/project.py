from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import uuid4


def gen_project_id() -> str:
    return f"p-{uuid4().hex[:10]}"


@dataclass
class Project:
    """
    Domain model for a project row.

    Exactly one of owner_ref (account id) / guest_ref (guest id) is set.
    A claim is the flip guest_ref -> None, owner_ref -> account id.
    """
    project_id: str
    name: str

    owner_ref: Optional[str] = None
    guest_ref: Optional[str] = None

    created_at: str = ""
    updated_at: str = ""

    @property
    def ownership_is_valid(self) -> bool:
        return (self.owner_ref is None) != (self.guest_ref is None)

    @property
    def is_guest_owned(self) -> bool:
        return self.owner_ref is None and self.guest_ref is not None

    def to_api(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "name": self.name,
            "owner_ref": self.owner_ref,
            "guest_ref": self.guest_ref,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
