"""
Pydantic schemas for projects.
"""
from typing import Dict, Optional

from pydantic import BaseModel, Field


class ProjectCreate(BaseModel):
    """Schema for creating a project under the current identity."""
    name: str = Field(..., min_length=1, max_length=200, description="Project name")


class ProjectRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class ProjectOut(BaseModel):
    """Schema for project output, annotated with the caller's role."""
    project_id: str = Field(..., description="Project ID")
    name: str
    owner_ref: Optional[str] = None
    guest_ref: Optional[str] = None
    role: Optional[str] = Field(None, description="owner | editor | viewer")
    permissions: Dict[str, bool] = Field(default_factory=dict, description="Capability -> allowed")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
