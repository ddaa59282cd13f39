"""
Error taxonomy for the workspace service.

Everything core code raises (or returns, in the case of access decisions)
derives from WorkspaceError so routers can map it to HTTP in one place.
"""
from __future__ import annotations

from typing import List, Optional


class WorkspaceError(Exception):
    """Base class for all workspace errors."""


class GuestIdentityRetired(WorkspaceError):
    """
    Guest scoping was requested on a device that has already completed
    an authenticated sign-in. Indicates an integration bug.
    """

    def __init__(self, message: str = "Guest identity is retired on this device"):
        super().__init__(message)


class AccessDenied(WorkspaceError):
    """Role check failed for (identity, project, capability)."""

    def __init__(
        self,
        project_id: str,
        capability: str,
        reason: str = "no access",
    ):
        self.project_id = project_id
        self.capability = capability
        self.reason = reason
        super().__init__(f"{capability} denied on project {project_id}: {reason}")


class OwnershipInvariantViolation(WorkspaceError):
    """
    A project was observed with both or neither of owner_ref/guest_ref set.
    Treated as data corruption: the record is inaccessible.
    """

    def __init__(self, project_id: str, owner_ref: Optional[str], guest_ref: Optional[str]):
        self.project_id = project_id
        self.owner_ref = owner_ref
        self.guest_ref = guest_ref
        super().__init__(
            f"Project {project_id} violates ownership invariant "
            f"(owner_ref={owner_ref!r}, guest_ref={guest_ref!r})"
        )


class ClaimPartialFailure(WorkspaceError):
    """
    One or more candidate projects failed to transfer during a claim.

    This is reported, not raised: the claim engine hands it back inside its
    result and the session coordinator logs it.
    """

    def __init__(self, failures: List["ClaimFailure"]):  # noqa: F821
        self.failures = list(failures)
        ids = ", ".join(f.project_id for f in self.failures)
        super().__init__(f"{len(self.failures)} project(s) failed to transfer: {ids}")


class NotFound(WorkspaceError):
    """Requested record does not exist."""


class Conflict(WorkspaceError):
    """Request conflicts with the current state (duplicate member, last owner, ...)."""
