"""
Claim engine: transfer guest-owned projects to the account that just signed in.

Safety comes from the store, not from this process:
- the transfer is a compare-and-set (owner_ref still NULL, guest_ref unchanged),
  so concurrent or repeated claims move each project exactly once;
- the owner membership is insert-if-absent, so retries never duplicate it.

Each candidate is processed on its own. A failing project is recorded and the
rest continue; the whole call never raises.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from adapters.base import StorageAdapter
from core.errors import ClaimPartialFailure
from core.ownership import is_claimable
from models import Project, Role
from models.converters import project_from_row

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimFailure:
    project_id: str
    stage: str  # "lookup" | "transfer" | "membership"
    error: str


@dataclass
class ClaimResult:
    claimed_count: int = 0
    claimed_project_ids: List[str] = field(default_factory=list)
    repaired_project_ids: List[str] = field(default_factory=list)
    failures: List[ClaimFailure] = field(default_factory=list)

    @property
    def error(self) -> Optional[ClaimPartialFailure]:
        if not self.failures:
            return None
        return ClaimPartialFailure(self.failures)

    def to_api(self) -> Dict[str, Any]:
        return {
            "claimed_count": self.claimed_count,
            "claimed_project_ids": list(self.claimed_project_ids),
            "repaired_project_ids": list(self.repaired_project_ids),
            "failures": [
                {"project_id": f.project_id, "stage": f.stage, "error": f.error}
                for f in self.failures
            ],
        }


class ClaimEngine:
    def __init__(self, store: StorageAdapter):
        self.store = store

    def claim(
        self,
        account_id: str,
        guest_id: Optional[str],
        remembered_project_id: Optional[str] = None,
    ) -> ClaimResult:
        """
        Move every unclaimed project of `guest_id` (plus, at most, the one
        remembered project) to `account_id`.

        Returns:
            ClaimResult whose claimed_count is the number of rows this call
            actually transferred.
        """
        result = ClaimResult()
        if not account_id:
            return result

        try:
            candidates = self._candidates(account_id, guest_id, remembered_project_id)
            dangling = [
                project_from_row(r)
                for r in self.store.list_projects_missing_owner_membership(account_id)
            ]
        except Exception as e:
            logger.warning(f"[CLAIM] Candidate lookup failed for account {account_id}: {e}")
            result.failures.append(ClaimFailure(project_id="", stage="lookup", error=str(e)))
            return result

        if not candidates and not dangling:
            return result

        logger.info(f"[CLAIM] {len(candidates)} candidate project(s) for account {account_id}")

        for project in candidates:
            self._claim_one(account_id, project, result)

        # earlier runs that transferred a project but failed to add the membership
        for project in dangling:
            if project.project_id in result.claimed_project_ids:
                continue
            try:
                self._ensure_owner_membership(project.project_id, account_id)
                result.repaired_project_ids.append(project.project_id)
            except Exception as e:
                logger.warning(f"[CLAIM] Membership repair failed for {project.project_id}: {e}")
                result.failures.append(ClaimFailure(project.project_id, "membership", str(e)))

        if result.failures:
            logger.warning(f"[CLAIM] {result.error}")
        logger.info(
            f"[CLAIM] Claimed {result.claimed_count} project(s), "
            f"repaired {len(result.repaired_project_ids)} for account {account_id}"
        )
        return result

    def _candidates(
        self,
        account_id: str,
        guest_id: Optional[str],
        remembered_project_id: Optional[str],
    ) -> List[Project]:
        candidates: List[Project] = []
        if guest_id:
            for row in self.store.find_unclaimed_projects(guest_id):
                project = project_from_row(row)
                if is_claimable(project) and project.guest_ref == guest_id:
                    candidates.append(project)

        stale = self._remembered_candidate(account_id, guest_id, remembered_project_id)
        if stale is not None and all(c.project_id != stale.project_id for c in candidates):
            candidates.append(stale)
        return candidates

    def _remembered_candidate(
        self,
        account_id: str,
        guest_id: Optional[str],
        remembered_project_id: Optional[str],
    ) -> Optional[Project]:
        """
        The single remembered project may be claimed even though its guest_ref
        is not the current guest id (device storage was cleared and a new guest
        id issued). Only that one pointer qualifies, and only while it is still
        guest-owned and this account holds no membership on it.
        """
        if not remembered_project_id:
            return None
        row = self.store.get_project(remembered_project_id)
        if not row:
            return None
        project = project_from_row(row)
        if not is_claimable(project) or project.guest_ref == guest_id:
            return None
        if self.store.get_membership(project.project_id, account_id):
            return None
        logger.info(
            f"[CLAIM] Including remembered project {project.project_id} with a mismatched guest id"
        )
        return project

    def _claim_one(self, account_id: str, project: Project, result: ClaimResult) -> None:
        try:
            won = self.store.claim_project(project.project_id, account_id, project.guest_ref)
        except Exception as e:
            logger.warning(f"[CLAIM] Transfer failed for {project.project_id}: {e}")
            result.failures.append(ClaimFailure(project.project_id, "transfer", str(e)))
            return

        if not won:
            # another tab/device got there first
            logger.info(f"[CLAIM] Project {project.project_id} already claimed elsewhere")
            return

        result.claimed_count += 1
        result.claimed_project_ids.append(project.project_id)

        try:
            self._ensure_owner_membership(project.project_id, account_id)
        except Exception as e:
            logger.warning(f"[CLAIM] Owner membership failed for {project.project_id}: {e}")
            result.failures.append(ClaimFailure(project.project_id, "membership", str(e)))

    def _ensure_owner_membership(self, project_id: str, account_id: str) -> None:
        row, created = self.store.insert_membership_if_absent(project_id, account_id, Role.OWNER.value)
        if not created and row.get("role") != Role.OWNER.value:
            # a claimer always ends up as owner, even if invited earlier with a lesser role
            self.store.update_membership_role(project_id, account_id, Role.OWNER.value, keep_last_owner=False)
