from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from . import Account, Document, DocumentType, Membership, Project, Role


def _bool_from_row(v: Any) -> bool:
    """
    Convert stored booleans to Python bool.
    Accepts: True/False, 1/0, TRUE/FALSE, yes/no (case-insensitive).
    """
    if v is None:
        return False
    if isinstance(v, bool):
        return v
    s = str(v).strip().upper()
    return s in ("TRUE", "1", "YES", "Y")


def _ref(v: Any) -> Optional[str]:
    # empty strings count as unset so a blank ref never passes for ownership
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _ts(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, datetime):
        return v.isoformat()
    return str(v)


def project_from_row(row: Dict[str, Any]) -> Project:
    return Project(
        project_id=row.get("project_id", ""),
        name=row.get("name") or "",
        owner_ref=_ref(row.get("owner_ref")),
        guest_ref=_ref(row.get("guest_ref")),
        created_at=_ts(row.get("created_at")),
        updated_at=_ts(row.get("updated_at")),
    )


def document_from_row(row: Dict[str, Any]) -> Document:
    raw_type = (row.get("document_type") or DocumentType.TEXT.value).strip().lower()
    try:
        doc_type = DocumentType(raw_type)
    except ValueError:
        doc_type = DocumentType.TEXT

    return Document(
        document_id=str(row.get("document_id", "")),
        project_id=row.get("project_id", ""),
        document_number=int(row.get("document_number") or 0),
        title=row.get("title") or "",
        document_type=doc_type,
        is_open=_bool_from_row(row.get("is_open")),
        text_content=row.get("text_content"),
        drawing_content=row.get("drawing_content"),
        created_at=_ts(row.get("created_at")),
        updated_at=_ts(row.get("updated_at")),
    )


def membership_from_row(row: Dict[str, Any]) -> Optional[Membership]:
    """
    Convert a membership row. Rows with an unrecognised role are dropped
    (returns None) so they never grant anything.
    """
    role = Role.parse(row.get("role"))
    if role is None:
        return None
    return Membership(
        project_id=row.get("project_id", ""),
        account_id=row.get("account_id", ""),
        role=role,
        created_at=_ts(row.get("created_at")),
        updated_at=_ts(row.get("updated_at")),
        email=row.get("email") or None,
        display_name=row.get("display_name") or None,
    )


def account_from_row(row: Dict[str, Any]) -> Account:
    return Account(
        account_id=row.get("account_id", ""),
        email=row.get("email") or None,
        display_name=row.get("display_name") or None,
    )
