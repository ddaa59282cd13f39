"""
Session lifecycle: Anonymous -> Authenticating -> Authenticated -> SignedOut -> Anonymous.

The coordinator is the single owner of "who is the caller right now" and hands
it out explicitly (current_identity / state); nothing else reads ambient
session globals.

Sign-in triggers exactly one claim, scoped to the guest id active at the
moment of the transition. Repeated "signed in" notifications for the same
account (several listeners, INITIAL_SESSION + SIGNED_IN, ...) are folded into
one. A TTL window keeps the provider flapping between accounts without a
sign-out from re-claiming; a sign-out clears it.
The claim is handed to a dispatcher (FastAPI BackgroundTasks in the API) so
sign-in never waits for it.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol

from cachetools import TTLCache

from adapters.base import StorageAdapter
from core.claim import ClaimEngine, ClaimFailure, ClaimResult
from core.identity import LocalIdentityStore
from core.ownership import Identity
from models import Account

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    SIGNED_OUT = "signed_out"


class AuthEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    SIGNED_OUT = "SIGNED_OUT"


AuthCallback = Callable[[AuthEvent, Optional[Account]], Any]
Dispatcher = Callable[..., Any]


class IdentityProvider(Protocol):
    """Contract of the external identity provider."""

    def get_current_account(self) -> Optional[Account]:
        ...

    def on_auth_state_change(self, callback: AuthCallback) -> Callable[[], None]:
        """Subscribe; returns an unsubscribe callable."""
        ...


class AuthEventBus:
    """
    In-process identity provider: the auth SDK (or the /session/events
    endpoint) pushes events here and every subscriber is notified.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: List[AuthCallback] = []
        self._account: Optional[Account] = None

    def get_current_account(self) -> Optional[Account]:
        with self._lock:
            return self._account

    def on_auth_state_change(self, callback: AuthCallback) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def emit(self, event: AuthEvent, account: Optional[Account] = None) -> None:
        event = AuthEvent(event)
        with self._lock:
            if event == AuthEvent.SIGNED_OUT:
                self._account = None
            elif account is not None:
                self._account = account
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event, account)
            except Exception as e:
                logger.exception(f"Auth listener failed on {event.value}: {e}")


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus = SessionStatus.ANONYMOUS
    account: Optional[Account] = None
    # guest id that was active when the session started (claim scope)
    guest_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED and self.account is not None


def run_inline(func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    func(*args, **kwargs)


class SessionCoordinator:
    def __init__(
        self,
        identity_store: LocalIdentityStore,
        claim_engine: ClaimEngine,
        store: Optional[StorageAdapter] = None,
        dedupe_seconds: float = 10.0,
        dispatch: Dispatcher = run_inline,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.identity_store = identity_store
        self.claim_engine = claim_engine
        self.store = store
        self.dispatch = dispatch

        self._lock = threading.RLock()
        self._state = SessionState()
        self._recent_claims: TTLCache = TTLCache(maxsize=64, ttl=max(dedupe_seconds, 0.001), timer=timer)
        self._unsubscribe: Optional[Callable[[], None]] = None

        self.last_claim_result: Optional[ClaimResult] = None
        self.claims_dispatched = 0

    # ---------- wiring ----------

    def attach(self, provider: IdentityProvider) -> None:
        """Subscribe to provider events (replacing an earlier subscription)."""
        if self._unsubscribe:
            self._unsubscribe()
        self._unsubscribe = provider.on_auth_state_change(self.handle_event)

    def detach(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def load(self, provider: Optional[IdentityProvider] = None) -> SessionState:
        """
        App (re)load. Resumes an existing provider session, otherwise enters
        Anonymous; a device that never signed in gets its guest id here.
        """
        account = provider.get_current_account() if provider else None
        if account is not None:
            self.handle_event(AuthEvent.INITIAL_SESSION, account)
            return self.state

        with self._lock:
            guest_id = None
            if not self.identity_store.is_retired:
                guest_id = self.identity_store.get_or_create_guest_id()
            self._state = SessionState(SessionStatus.ANONYMOUS, None, guest_id)
            return self._state

    # ---------- state ----------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    def current_identity(self) -> Optional[Identity]:
        """
        Identity to pass into workspace operations, or None when the caller
        can only see open documents (signed out on a retired device).
        """
        with self._lock:
            state = self._state
            if state.is_authenticated:
                return Identity.account(state.account.account_id)
            if state.status == SessionStatus.SIGNED_OUT or self.identity_store.is_retired:
                return None
            guest_id = self.identity_store.get_or_create_guest_id()
            if state.guest_id != guest_id:
                self._state = replace(state, guest_id=guest_id)
            return Identity.guest(guest_id)

    def begin_authentication(self) -> SessionState:
        with self._lock:
            if self._state.status == SessionStatus.ANONYMOUS:
                self._state = replace(self._state, status=SessionStatus.AUTHENTICATING)
            return self._state

    def authentication_failed(self) -> SessionState:
        with self._lock:
            if self._state.status == SessionStatus.AUTHENTICATING:
                self._state = replace(self._state, status=SessionStatus.ANONYMOUS)
            return self._state

    # ---------- events ----------

    def handle_event(
        self,
        event: AuthEvent,
        account: Optional[Account] = None,
        dispatch: Optional[Dispatcher] = None,
    ) -> bool:
        """
        Apply a provider event.

        Returns:
            True iff this event dispatched a claim.
        """
        event = AuthEvent(event)
        job = None

        with self._lock:
            if event in (AuthEvent.SIGNED_IN, AuthEvent.INITIAL_SESSION) and account is not None:
                job = self._on_signed_in(account)
            elif event in (AuthEvent.TOKEN_REFRESHED, AuthEvent.USER_UPDATED):
                state = self._state
                if state.is_authenticated and account is not None and account.account_id == state.account.account_id:
                    self._state = replace(state, account=account)
            elif event == AuthEvent.SIGNED_OUT:
                if self._state.status in (SessionStatus.AUTHENTICATED, SessionStatus.AUTHENTICATING):
                    logger.info("Signed out")
                    self._forget_recent_claims(self._state.account)
                    self._state = SessionState(SessionStatus.SIGNED_OUT, None, None)
            elif event == AuthEvent.INITIAL_SESSION and self._state.status == SessionStatus.SIGNED_OUT:
                self._state = SessionState(SessionStatus.ANONYMOUS, None, self.identity_store.peek_guest_id())

        if job is None:
            return False

        self.claims_dispatched += 1
        (dispatch or self.dispatch)(self._run_claim, *job)
        return True

    def _forget_recent_claims(self, account: Optional[Account]) -> None:
        """The next sign-in after a sign-out is genuine and always claims."""
        if account is None:
            return
        for key in list(self._recent_claims.keys()):
            if key[0] == account.account_id:
                self._recent_claims.pop(key, None)

    def _on_signed_in(self, account: Account):
        state = self._state
        if state.is_authenticated and state.account.account_id == account.account_id:
            # duplicate notification for the session we already have
            return None

        guest_id = self.identity_store.peek_guest_id()
        try:
            self.identity_store.retire_guest_identity()
        except OSError as e:
            logger.warning(f"Could not persist guest retirement: {e}")

        self._state = SessionState(SessionStatus.AUTHENTICATED, account, guest_id)
        logger.info(f"Signed in as account {account.account_id}")

        key = (account.account_id, guest_id)
        if key in self._recent_claims:
            logger.info(f"[CLAIM] Skipping repeat claim for account {account.account_id}")
            return None
        self._recent_claims[key] = True

        remembered = self.identity_store.get_last_visited()
        return account, guest_id, (remembered.project_id if remembered else None)

    def _run_claim(
        self,
        account: Account,
        guest_id: Optional[str],
        remembered_project_id: Optional[str],
    ) -> ClaimResult:
        if self.store is not None:
            try:
                self.store.upsert_account(account.account_id, account.email, account.display_name)
            except Exception as e:
                logger.warning(f"Failed to save profile for account {account.account_id}: {e}")

        try:
            result = self.claim_engine.claim(account.account_id, guest_id, remembered_project_id)
        except Exception as e:
            # the engine should not raise; if it does, it still must not break sign-in
            logger.exception(f"[CLAIM] Unexpected claim error for account {account.account_id}: {e}")
            result = ClaimResult(failures=[ClaimFailure(project_id="", stage="lookup", error=str(e))])

        if result.error is not None:
            logger.warning(f"[CLAIM] Partial failure, will retry on next sign-in: {result.error}")
            # allow an immediate retry on the next genuine sign-in
            with self._lock:
                self._recent_claims.pop((account.account_id, guest_id), None)

        self.last_claim_result = result
        return result
