from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Role(str, Enum):
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"

    @classmethod
    def parse(cls, value: Any) -> Optional["Role"]:
        """Lenient parse for stored values; unknown -> None."""
        if isinstance(value, Role):
            return value
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass
class Membership:
    project_id: str
    account_id: str
    role: Role
    created_at: str = ""
    updated_at: str = ""

    # filled from account profiles when listing members
    email: Optional[str] = None
    display_name: Optional[str] = None

    def to_api(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "account_id": self.account_id,
            "role": self.role.value,
            "email": self.email,
            "display_name": self.display_name,
            "created_at": self.created_at,
        }
