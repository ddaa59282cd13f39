"""
Pydantic schemas for API request/response validation.
"""
from .document import (
    DocumentContentUpdate,
    DocumentCreate,
    DocumentOut,
    DocumentVisibilityUpdate,
    DocumentWithContent,
)
from .member import MemberCreate, MemberOut, MemberRoleUpdate
from .project import ProjectCreate, ProjectOut, ProjectRename
from .session import AccountIn, AuthEventIn, ClaimResultOut, LastVisitedOut, SessionOut

__all__ = [
    "AccountIn",
    "AuthEventIn",
    "ClaimResultOut",
    "DocumentContentUpdate",
    "DocumentCreate",
    "DocumentOut",
    "DocumentVisibilityUpdate",
    "DocumentWithContent",
    "LastVisitedOut",
    "MemberCreate",
    "MemberOut",
    "MemberRoleUpdate",
    "ProjectCreate",
    "ProjectOut",
    "ProjectRename",
    "SessionOut",
]
