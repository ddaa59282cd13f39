"""
Pydantic schemas for session / identity endpoints.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from core.session import AuthEvent, SessionStatus


class AccountIn(BaseModel):
    id: str = Field(..., min_length=1, description="Account id from the identity provider")
    email: Optional[str] = None
    display_name: Optional[str] = None


class AuthEventIn(BaseModel):
    """Auth state change pushed by the identity provider SDK."""
    event: AuthEvent
    account: Optional[AccountIn] = None


class ClaimFailureOut(BaseModel):
    project_id: str
    stage: str
    error: str


class ClaimResultOut(BaseModel):
    claimed_count: int = 0
    claimed_project_ids: List[str] = Field(default_factory=list)
    repaired_project_ids: List[str] = Field(default_factory=list)
    failures: List[ClaimFailureOut] = Field(default_factory=list)


class SessionOut(BaseModel):
    status: SessionStatus
    account_id: Optional[str] = None
    email: Optional[str] = None
    guest_id: Optional[str] = None
    claim_dispatched: Optional[bool] = None
    last_claim: Optional[ClaimResultOut] = None


class LastVisitedOut(BaseModel):
    project_id: Optional[str] = None
    document_number: Optional[int] = None
