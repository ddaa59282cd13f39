"""
Tests for the claim engine.

Run with: pytest tests/test_claim.py -v
"""
import threading

import pytest

from core.access import AccessControl
from core.claim import ClaimEngine
from core.errors import ClaimPartialFailure
from core.ownership import Identity
from models import Role


class RacingStore:
    """Delegates to a real store but makes every caller finish the candidate
    lookup before any of them starts transferring."""

    def __init__(self, store, parties):
        self._store = store
        self._barrier = threading.Barrier(parties, timeout=10)

    def __getattr__(self, name):
        return getattr(self._store, name)

    def find_unclaimed_projects(self, guest_id):
        rows = self._store.find_unclaimed_projects(guest_id)
        self._barrier.wait()
        return rows


class FlakyStore:
    """Delegates to a real store; selected operations fail for selected projects."""

    def __init__(self, store, fail_transfer=(), fail_membership=()):
        self._store = store
        self.fail_transfer = set(fail_transfer)
        self.fail_membership = set(fail_membership)

    def __getattr__(self, name):
        return getattr(self._store, name)

    def claim_project(self, project_id, account_id, expected_guest_ref):
        if project_id in self.fail_transfer:
            raise RuntimeError("connection reset")
        return self._store.claim_project(project_id, account_id, expected_guest_ref)

    def insert_membership_if_absent(self, project_id, account_id, role):
        if project_id in self.fail_membership:
            raise RuntimeError("membership write failed")
        return self._store.insert_membership_if_absent(project_id, account_id, role)


class TestClaim:
    """Guest projects move to the account exactly once."""

    def test_claims_all_guest_projects(self, store):
        store.create_project("p-1", "A", guest_ref="g1")
        store.create_project("p-2", "B", guest_ref="g1")
        store.create_project("p-3", "Other guest", guest_ref="g2")

        result = ClaimEngine(store).claim("acct-1", "g1")

        assert result.claimed_count == 2
        assert sorted(result.claimed_project_ids) == ["p-1", "p-2"]
        assert result.error is None
        for pid in ("p-1", "p-2"):
            row = store.get_project(pid)
            assert row["owner_ref"] == "acct-1"
            assert row["guest_ref"] is None
            assert store.get_membership(pid, "acct-1")["role"] == "owner"
        assert store.get_project("p-3")["guest_ref"] == "g2"

    def test_second_run_is_noop(self, store):
        """Claiming twice for acct-1/g1 transfers nothing the second time."""
        store.create_project("p-1", "A", guest_ref="g1")
        engine = ClaimEngine(store)

        assert engine.claim("acct-1", "g1").claimed_count == 1
        again = engine.claim("acct-1", "g1")
        assert again.claimed_count == 0
        assert again.claimed_project_ids == []
        assert len(store.list_memberships("p-1")) == 1

    def test_nothing_to_claim(self, store):
        result = ClaimEngine(store).claim("acct-1", "g-empty")
        assert result.claimed_count == 0
        assert result.failures == []

    def test_no_guest_id(self, store):
        store.create_project("p-1", "A", guest_ref="g1")
        assert ClaimEngine(store).claim("acct-1", None).claimed_count == 0
        assert store.get_project("p-1")["owner_ref"] is None

    def test_claimer_becomes_owner_even_if_invited(self, store):
        """An earlier lesser membership is promoted to owner."""
        store.create_project("p-1", "A", guest_ref="g1")
        store.insert_membership_if_absent("p-1", "acct-1", "viewer")

        ClaimEngine(store).claim("acct-1", "g1")

        assert store.get_membership("p-1", "acct-1")["role"] == "owner"

    def test_claimed_project_accessible_to_account(self, store):
        store.create_project("p-1", "A", guest_ref="g1")
        ClaimEngine(store).claim("acct-1", "g1")
        access = AccessControl(store)
        assert access.resolve_role(Identity.account("acct-1"), "p-1") == Role.OWNER
        assert access.resolve_role(Identity.guest("g1"), "p-1") is None


class TestConcurrentClaims:
    """Two tabs signing in at once: each project moves once in total."""

    @pytest.mark.parametrize("accounts", [("acct-1", "acct-1"), ("acct-1", "acct-2")])
    def test_stale_candidates(self, store, accounts):
        for i in range(5):
            store.create_project(f"p-{i}", f"Doc {i}", guest_ref="g1")
        racing = RacingStore(store, parties=len(accounts))
        results = {}

        def run(idx, account_id):
            results[idx] = ClaimEngine(racing).claim(account_id, "g1")

        threads = [threading.Thread(target=run, args=(i, a)) for i, a in enumerate(accounts)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(r.claimed_count for r in results.values()) == 5
        claimed = [pid for r in results.values() for pid in r.claimed_project_ids]
        assert sorted(claimed) == sorted(f"p-{i}" for i in range(5))
        for i in range(5):
            row = store.get_project(f"p-{i}")
            assert row["guest_ref"] is None
            owners = [m for m in store.list_memberships(f"p-{i}") if m["role"] == "owner"]
            assert [m["account_id"] for m in owners] == [row["owner_ref"]]


class TestRememberedProject:
    """The single last-visited project may be claimed across a guest id change."""

    def test_remembered_project_included(self, store):
        store.create_project("p-old", "From cleared storage", guest_ref="g-old")
        store.create_project("p-new", "Current guest", guest_ref="g-new")
        store.create_project("p-other", "Not remembered", guest_ref="g-old")

        result = ClaimEngine(store).claim("acct-1", "g-new", remembered_project_id="p-old")

        assert sorted(result.claimed_project_ids) == ["p-new", "p-old"]
        assert store.get_project("p-other")["owner_ref"] is None

    def test_remembered_already_claimed(self, store):
        store.create_project("p-old", "Taken", guest_ref="g-old")
        store.claim_project("p-old", "acct-2", "g-old")

        result = ClaimEngine(store).claim("acct-1", "g-new", remembered_project_id="p-old")

        assert result.claimed_count == 0
        assert store.get_project("p-old")["owner_ref"] == "acct-2"

    def test_remembered_skipped_when_already_member(self, store):
        store.create_project("p-old", "Shared", guest_ref="g-old")
        store.insert_membership_if_absent("p-old", "acct-1", "viewer")

        result = ClaimEngine(store).claim("acct-1", "g-new", remembered_project_id="p-old")

        assert result.claimed_count == 0
        assert store.get_project("p-old")["guest_ref"] == "g-old"

    def test_remembered_missing(self, store):
        result = ClaimEngine(store).claim("acct-1", "g1", remembered_project_id="gone")
        assert result.claimed_count == 0
        assert result.failures == []


class TestFailureIsolation:
    """One failing project never stops the others."""

    def test_transfer_failure_recorded(self, store):
        for pid in ("p-1", "p-2", "p-3"):
            store.create_project(pid, pid, guest_ref="g1")
        flaky = FlakyStore(store, fail_transfer={"p-2"})

        result = ClaimEngine(flaky).claim("acct-1", "g1")

        assert sorted(result.claimed_project_ids) == ["p-1", "p-3"]
        assert result.claimed_count == 2
        assert [(f.project_id, f.stage) for f in result.failures] == [("p-2", "transfer")]
        assert isinstance(result.error, ClaimPartialFailure)
        assert store.get_project("p-2")["guest_ref"] == "g1"

    def test_retry_after_transfer_failure(self, store):
        store.create_project("p-1", "A", guest_ref="g1")
        ClaimEngine(FlakyStore(store, fail_transfer={"p-1"})).claim("acct-1", "g1")

        result = ClaimEngine(store).claim("acct-1", "g1")

        assert result.claimed_project_ids == ["p-1"]

    def test_membership_failure_repaired_later(self, store):
        """A transferred project without its owner row is fixed on the next run."""
        store.create_project("p-1", "A", guest_ref="g1")
        first = ClaimEngine(FlakyStore(store, fail_membership={"p-1"})).claim("acct-1", "g1")

        assert first.claimed_count == 1
        assert [(f.project_id, f.stage) for f in first.failures] == [("p-1", "membership")]
        assert store.get_membership("p-1", "acct-1") is None

        second = ClaimEngine(store).claim("acct-1", "g1")

        assert second.claimed_count == 0
        assert second.repaired_project_ids == ["p-1"]
        assert store.get_membership("p-1", "acct-1")["role"] == "owner"

    def test_lookup_failure_returns_result(self, json_store):
        class BrokenLookup(FlakyStore):
            def find_unclaimed_projects(self, guest_id):
                raise RuntimeError("store offline")

        result = ClaimEngine(BrokenLookup(json_store)).claim("acct-1", "g1")

        assert result.claimed_count == 0
        assert [f.stage for f in result.failures] == ["lookup"]

    def test_result_to_api(self, store):
        store.create_project("p-1", "A", guest_ref="g1")
        out = ClaimEngine(store).claim("acct-1", "g1").to_api()
        assert out == {
            "claimed_count": 1,
            "claimed_project_ids": ["p-1"],
            "repaired_project_ids": [],
            "failures": [],
        }
