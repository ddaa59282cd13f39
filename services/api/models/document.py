from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class DocumentType(str, Enum):
    TEXT = "text"
    DRAWING = "drawing"


@dataclass
class Document:
    """
    Domain model for a document inside a project.

    `document_number` is the stable external reference: unique within the
    project and assigned in increasing order by the store.
    `text_content` / `drawing_content` are opaque payloads.
    """
    document_id: str
    project_id: str
    document_number: int
    title: str

    document_type: DocumentType = DocumentType.TEXT
    is_open: bool = False

    text_content: Optional[str] = None
    drawing_content: Optional[str] = None

    created_at: str = ""
    updated_at: str = ""

    def to_api(self, include_content: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "project_id": self.project_id,
            "document_number": self.document_number,
            "title": self.title,
            "document_type": self.document_type.value,
            "is_open": self.is_open,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if include_content:
            out["text_content"] = self.text_content
            out["drawing_content"] = self.drawing_content
        return out
