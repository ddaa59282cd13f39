"""
Pydantic schemas for project members.
"""
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from models import Role


class MemberCreate(BaseModel):
    """Invite by account id or by profile email."""
    account_id: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = Field(None, min_length=3, max_length=320)
    role: Role = Field(Role.VIEWER, description="owner | editor | viewer")

    @model_validator(mode="after")
    def require_target(self) -> "MemberCreate":
        if not self.account_id and not self.email:
            raise ValueError("account_id or email is required")
        return self


class MemberRoleUpdate(BaseModel):
    role: Role


class MemberOut(BaseModel):
    project_id: str
    account_id: str
    role: Role
    email: Optional[str] = None
    display_name: Optional[str] = None
    created_at: Optional[str] = None
