# services/api/routers/session.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Query

from core.session import SessionCoordinator
from dependencies import Bus, Coordinator, IdentityStore
from models import Account
from schemas import AuthEventIn, LastVisitedOut, SessionOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["session"])


def _session_out(coordinator: SessionCoordinator, claim_dispatched: Optional[bool] = None) -> dict:
    state = coordinator.state
    last = coordinator.last_claim_result
    return {
        "status": state.status,
        "account_id": state.account.account_id if state.account else None,
        "email": state.account.email if state.account else None,
        "guest_id": state.guest_id,
        "claim_dispatched": claim_dispatched,
        "last_claim": last.to_api() if last else None,
    }


@router.get("", response_model=SessionOut)
async def get_session(coordinator: Coordinator):
    return _session_out(coordinator)


@router.post("/authenticating", response_model=SessionOut)
async def begin_authentication(coordinator: Coordinator):
    """Login form submitted; the identity provider has not answered yet."""
    coordinator.begin_authentication()
    return _session_out(coordinator)


@router.post("/authentication-failed", response_model=SessionOut)
async def authentication_failed(coordinator: Coordinator):
    coordinator.authentication_failed()
    return _session_out(coordinator)


@router.post("/events", response_model=SessionOut)
async def push_auth_event(
    body: AuthEventIn,
    background_tasks: BackgroundTasks,
    coordinator: Coordinator,
    bus: Bus,
):
    """
    Auth state change from the identity provider.

    The coordinator handles it first with a background dispatcher so the
    claim runs after the response is sent; the bus then fans it out to any
    other listener (the coordinator's own subscription sees a duplicate and
    ignores it).
    """
    account = None
    if body.account is not None:
        account = Account(
            account_id=body.account.id,
            email=body.account.email,
            display_name=body.account.display_name,
        )

    dispatched = coordinator.handle_event(body.event, account, dispatch=background_tasks.add_task)
    bus.emit(body.event, account)
    return _session_out(coordinator, claim_dispatched=dispatched)


@router.get("/last-visited", response_model=LastVisitedOut)
async def get_last_visited(
    identity_store: IdentityStore,
    project_id: Optional[str] = Query(None, description="Return the last document opened in this project"),
):
    if project_id:
        return {
            "project_id": project_id,
            "document_number": identity_store.get_last_document_for_project(project_id),
        }
    last = identity_store.get_last_visited()
    if last is None:
        return {"project_id": None, "document_number": None}
    return {"project_id": last.project_id, "document_number": last.document_number}
