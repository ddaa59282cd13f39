from __future__ import annotations

from .account import Account
from .document import Document, DocumentType
from .membership import Membership, Role
from .project import Project, gen_project_id

__all__ = [
    "Account",
    "Document",
    "DocumentType",
    "Membership",
    "Project",
    "Role",
    "gen_project_id",
]
