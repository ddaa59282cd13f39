# services/api/routers/members.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, status

from dependencies import CurrentIdentity, Workspace
from schemas import MemberCreate, MemberOut, MemberRoleUpdate

router = APIRouter(prefix="/projects/{project_id}/members", tags=["members"])


@router.get("", response_model=List[MemberOut])
async def list_members(project_id: str, workspace: Workspace, identity: CurrentIdentity):
    return workspace.list_members(identity, project_id)


@router.post("", response_model=MemberOut, status_code=status.HTTP_201_CREATED)
async def add_member(
    project_id: str,
    body: MemberCreate,
    workspace: Workspace,
    identity: CurrentIdentity,
):
    """Owner-only: invite an account by id or email."""
    try:
        return workspace.add_member(
            identity,
            project_id,
            role=body.role,
            account_id=body.account_id,
            email=body.email,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/{account_id}", response_model=MemberOut)
async def change_member_role(
    project_id: str,
    account_id: str,
    body: MemberRoleUpdate,
    workspace: Workspace,
    identity: CurrentIdentity,
):
    return workspace.change_member_role(identity, project_id, account_id, body.role)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    project_id: str,
    account_id: str,
    workspace: Workspace,
    identity: CurrentIdentity,
):
    workspace.remove_member(identity, project_id, account_id)
