"""
Pydantic schemas for documents.
"""
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from models import DocumentType


class DocumentCreate(BaseModel):
    """Schema for creating a document in a project."""
    title: str = Field("Untitled", max_length=300, description="Document title")
    document_type: DocumentType = Field(DocumentType.TEXT, description="text | drawing")
    is_open: bool = Field(False, description="Readable by anyone who knows the project id")


class DocumentOut(BaseModel):
    """Schema for document output (no content)."""
    project_id: str
    document_number: int = Field(..., description="Stable per-project reference")
    title: str
    document_type: DocumentType
    is_open: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DocumentWithContent(DocumentOut):
    """Schema for document output including the opaque payloads."""
    text_content: Optional[str] = None
    drawing_content: Optional[str] = None


class DocumentContentUpdate(BaseModel):
    """At least one payload must be provided."""
    text_content: Optional[str] = None
    drawing_content: Optional[str] = None

    @model_validator(mode="after")
    def require_one_payload(self) -> "DocumentContentUpdate":
        if self.text_content is None and self.drawing_content is None:
            raise ValueError("text_content or drawing_content is required")
        return self


class DocumentVisibilityUpdate(BaseModel):
    is_open: bool
