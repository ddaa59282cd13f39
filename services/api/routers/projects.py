# services/api/routers/projects.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, status

from dependencies import CurrentIdentity, Workspace
from schemas import ProjectCreate, ProjectOut, ProjectRename

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=List[ProjectOut])
async def list_projects(workspace: Workspace, identity: CurrentIdentity):
    """
    Projects of the current identity.

    Guests see their guest-scoped projects; accounts see projects they hold a
    membership on. Clients must re-fetch this after sign-in instead of
    trusting a pre-login list (the claim runs in the background).
    """
    return workspace.list_projects(identity)


@router.post("", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
async def create_project(body: ProjectCreate, workspace: Workspace, identity: CurrentIdentity):
    return workspace.create_project(identity, body.name)


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(project_id: str, workspace: Workspace, identity: CurrentIdentity):
    return workspace.get_project(identity, project_id)


@router.patch("/{project_id}", response_model=ProjectOut)
async def rename_project(
    project_id: str,
    body: ProjectRename,
    workspace: Workspace,
    identity: CurrentIdentity,
):
    return workspace.rename_project(identity, project_id, body.name)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(project_id: str, workspace: Workspace, identity: CurrentIdentity):
    workspace.delete_project(identity, project_id)
