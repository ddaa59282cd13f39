"""
Tests for the session coordinator and the in-process auth event bus.

Run with: pytest tests/test_session.py -v
"""
import pytest

from core.claim import ClaimEngine
from core.ownership import Identity
from core.session import AuthEvent, AuthEventBus, SessionCoordinator, SessionStatus
from models import Account

ALICE = Account("acct-1", "alice@example.com", "Alice")
BOB = Account("acct-2", "bob@example.com", "Bob")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FailingTransfer:
    """Delegates to a real store; transfers fail while `fail` is set."""

    def __init__(self, store):
        self._store = store
        self.fail = True

    def __getattr__(self, name):
        return getattr(self._store, name)

    def claim_project(self, *args):
        if self.fail:
            raise RuntimeError("write failed")
        return self._store.claim_project(*args)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def coordinator(identity_store, json_store, clock):
    c = SessionCoordinator(
        identity_store=identity_store,
        claim_engine=ClaimEngine(json_store),
        store=json_store,
        dedupe_seconds=10,
        timer=clock,
    )
    c.load()
    return c


def _guest_project(coordinator, store, project_id="p-1"):
    identity = coordinator.current_identity()
    assert identity.is_guest
    store.create_project(project_id, "Guest work", guest_ref=identity.id)
    return identity.id


class TestLoad:
    def test_fresh_device_is_anonymous_guest(self, coordinator, identity_store):
        state = coordinator.state
        assert state.status == SessionStatus.ANONYMOUS
        assert state.guest_id == identity_store.peek_guest_id()
        assert coordinator.current_identity() == Identity.guest(state.guest_id)

    def test_resumes_provider_session(self, identity_store, json_store):
        bus = AuthEventBus()
        bus.emit(AuthEvent.SIGNED_IN, ALICE)
        c = SessionCoordinator(identity_store, ClaimEngine(json_store), json_store)

        state = c.load(bus)

        assert state.status == SessionStatus.AUTHENTICATED
        assert c.current_identity() == Identity.account("acct-1")
        assert c.claims_dispatched == 1


class TestSignIn:
    """Sign-in runs exactly one claim."""

    def test_claims_guest_projects(self, coordinator, json_store, identity_store):
        guest_id = _guest_project(coordinator, json_store)

        assert coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE) is True

        assert coordinator.state.status == SessionStatus.AUTHENTICATED
        assert coordinator.state.guest_id == guest_id
        assert coordinator.last_claim_result.claimed_project_ids == ["p-1"]
        assert json_store.get_membership("p-1", "acct-1")["role"] == "owner"
        assert identity_store.is_retired
        assert coordinator.current_identity() == Identity.account("acct-1")

    def test_saves_profile(self, coordinator, json_store):
        coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        assert json_store.get_account("acct-1")["email"] == "alice@example.com"

    def test_duplicate_notifications(self, coordinator, json_store):
        """SIGNED_IN repeated and INITIAL_SESSION for the same account fold into one."""
        _guest_project(coordinator, json_store)

        assert coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        assert not coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        assert not coordinator.handle_event(AuthEvent.INITIAL_SESSION, ALICE)
        assert coordinator.claims_dispatched == 1

    def test_several_bus_listeners(self, coordinator, json_store):
        bus = AuthEventBus()
        seen = []
        bus.on_auth_state_change(lambda event, account: seen.append(event))
        coordinator.attach(bus)
        bus.on_auth_state_change(lambda event, account: seen.append(event))

        bus.emit(AuthEvent.SIGNED_IN, ALICE)
        bus.emit(AuthEvent.SIGNED_IN, ALICE)

        assert coordinator.claims_dispatched == 1
        assert seen.count(AuthEvent.SIGNED_IN) == 4

    def test_failing_listener_does_not_block_others(self, coordinator):
        bus = AuthEventBus()

        def broken(event, account):
            raise RuntimeError("listener bug")

        bus.on_auth_state_change(broken)
        coordinator.attach(bus)
        bus.emit(AuthEvent.SIGNED_IN, ALICE)

        assert coordinator.state.is_authenticated

    def test_token_refresh_does_not_claim(self, coordinator):
        coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        renamed = Account("acct-1", "alice@example.com", "Alice B.")

        assert not coordinator.handle_event(AuthEvent.TOKEN_REFRESHED, renamed)
        assert not coordinator.handle_event(AuthEvent.USER_UPDATED, renamed)
        assert coordinator.claims_dispatched == 1
        assert coordinator.state.account.display_name == "Alice B."

    def test_switching_accounts_claims_again(self, coordinator):
        coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        assert coordinator.handle_event(AuthEvent.SIGNED_IN, BOB)
        assert coordinator.current_identity() == Identity.account("acct-2")

    def test_deferred_dispatch(self, coordinator, json_store):
        """The claim runs whenever the dispatcher decides; sign-in is already done."""
        _guest_project(coordinator, json_store)
        jobs = []

        dispatched = coordinator.handle_event(
            AuthEvent.SIGNED_IN, ALICE, dispatch=lambda fn, *args: jobs.append((fn, args))
        )

        assert dispatched
        assert coordinator.state.is_authenticated
        assert json_store.get_project("p-1")["owner_ref"] is None

        fn, args = jobs[0]
        fn(*args)
        assert json_store.get_project("p-1")["owner_ref"] == "acct-1"


class TestSignOut:
    def test_signed_out_has_no_identity(self, coordinator, identity_store):
        coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        coordinator.handle_event(AuthEvent.SIGNED_OUT)

        assert coordinator.state.status == SessionStatus.SIGNED_OUT
        assert coordinator.current_identity() is None

    def test_reload_after_sign_out_stays_without_guest(self, coordinator):
        """A retired device is anonymous with no guest id after reload."""
        coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        coordinator.handle_event(AuthEvent.SIGNED_OUT)

        state = coordinator.load(AuthEventBus())

        assert state.status == SessionStatus.ANONYMOUS
        assert state.guest_id is None
        assert coordinator.current_identity() is None

    def test_sign_in_right_after_sign_out_claims(self, coordinator, json_store, clock):
        """A sign-out ends the dedupe window; the next sign-in is genuine."""
        guest_id = _guest_project(coordinator, json_store)
        coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        coordinator.handle_event(AuthEvent.SIGNED_OUT)
        # another project left behind under the same guest id
        json_store.create_project("p-2", "Late guest work", guest_ref=guest_id)
        clock.now += 1

        assert coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        assert coordinator.state.is_authenticated
        assert coordinator.claims_dispatched == 2
        assert coordinator.last_claim_result.claimed_project_ids == ["p-2"]

    def test_account_flapping_within_window_is_deduped(self, coordinator, clock):
        """Switching A -> B -> A without a sign-out claims once per account."""
        assert coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        assert coordinator.handle_event(AuthEvent.SIGNED_IN, BOB)
        clock.now += 5

        assert not coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        assert coordinator.current_identity() == Identity.account("acct-1")

        clock.now += 11
        coordinator.handle_event(AuthEvent.SIGNED_IN, BOB)
        assert coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)

    def test_sign_in_again_after_window(self, coordinator, clock):
        coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        coordinator.handle_event(AuthEvent.SIGNED_OUT)
        clock.now += 11

        assert coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        assert coordinator.last_claim_result.claimed_count == 0


class TestPartialFailure:
    def test_failed_claim_is_retried_on_next_sign_in(self, identity_store, json_store, clock):
        flaky = FailingTransfer(json_store)
        c = SessionCoordinator(identity_store, ClaimEngine(flaky), json_store, dedupe_seconds=10, timer=clock)
        c.load()
        _guest_project(c, json_store)

        c.handle_event(AuthEvent.SIGNED_IN, ALICE)
        assert c.last_claim_result.error is not None
        assert c.state.is_authenticated

        c.handle_event(AuthEvent.SIGNED_OUT)
        flaky.fail = False
        assert c.handle_event(AuthEvent.SIGNED_IN, ALICE)
        assert c.last_claim_result.claimed_project_ids == ["p-1"]

    def test_failed_claim_retried_on_account_switch_back(self, identity_store, json_store, clock):
        """A partial failure also lifts the window for flapping without sign-out."""
        flaky = FailingTransfer(json_store)
        c = SessionCoordinator(identity_store, ClaimEngine(flaky), json_store, dedupe_seconds=10, timer=clock)
        c.load()
        _guest_project(c, json_store)

        c.handle_event(AuthEvent.SIGNED_IN, ALICE)
        c.handle_event(AuthEvent.SIGNED_IN, BOB)
        flaky.fail = False
        assert c.handle_event(AuthEvent.SIGNED_IN, ALICE)


class TestAuthenticating:
    def test_begin_and_fail(self, coordinator):
        assert coordinator.begin_authentication().status == SessionStatus.AUTHENTICATING
        assert coordinator.authentication_failed().status == SessionStatus.ANONYMOUS
        assert coordinator.current_identity().is_guest

    def test_begin_then_sign_in(self, coordinator):
        coordinator.begin_authentication()
        coordinator.handle_event(AuthEvent.SIGNED_IN, ALICE)
        assert coordinator.state.status == SessionStatus.AUTHENTICATED
