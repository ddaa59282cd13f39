"""
Ownership rules for projects.

A project is owned either by a guest (guest_ref) or by an account
(owner_ref) - exactly one, for the lifetime of the record. owner_ref is
provenance only; permission checks go through memberships (core.access).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from core.errors import OwnershipInvariantViolation
from models import Project

logger = logging.getLogger(__name__)


class IdentityKind(str, Enum):
    GUEST = "guest"
    ACCOUNT = "account"


@dataclass(frozen=True)
class Identity:
    """The caller of a workspace operation: a guest id or an account id."""
    kind: IdentityKind
    id: str

    @classmethod
    def guest(cls, guest_id: str) -> "Identity":
        return cls(IdentityKind.GUEST, guest_id)

    @classmethod
    def account(cls, account_id: str) -> "Identity":
        return cls(IdentityKind.ACCOUNT, account_id)

    @property
    def is_guest(self) -> bool:
        return self.kind == IdentityKind.GUEST

    @property
    def is_account(self) -> bool:
        return self.kind == IdentityKind.ACCOUNT


def ownership_refs_for(identity: Identity) -> Tuple[Optional[str], Optional[str]]:
    """
    (owner_ref, guest_ref) for a resource created by `identity`.
    Authenticated -> owner_ref; guest -> guest_ref.
    """
    if not identity.id:
        raise ValueError("identity id must not be empty")
    if identity.is_account:
        return identity.id, None
    return None, identity.id


def check_ownership(project: Project) -> Project:
    """
    Return the project unchanged when it satisfies the single-owner rule.

    Raises:
        OwnershipInvariantViolation: both or neither ref set. Logged at ERROR
        so an operator can investigate; callers must fail closed.
    """
    if not project.ownership_is_valid:
        err = OwnershipInvariantViolation(project.project_id, project.owner_ref, project.guest_ref)
        logger.error(f"[OWNERSHIP] {err}")
        raise err
    return project


def is_claimable(project: Project) -> bool:
    """Guest-owned and not yet transferred."""
    return project.ownership_is_valid and project.is_guest_owned
