# services/api/routers/documents.py
from __future__ import annotations

import logging
from typing import Annotated, List

from fastapi import APIRouter, HTTPException, Path, status

from dependencies import CurrentIdentity, IdentityStore, Workspace
from schemas import (
    DocumentContentUpdate,
    DocumentCreate,
    DocumentOut,
    DocumentVisibilityUpdate,
    DocumentWithContent,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/documents", tags=["documents"])

DocumentNumber = Annotated[int, Path(ge=1, description="Per-project document number")]


@router.get("", response_model=List[DocumentOut])
async def list_documents(project_id: str, workspace: Workspace, identity: CurrentIdentity):
    return workspace.list_documents(identity, project_id)


@router.post("", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
async def create_document(
    project_id: str,
    body: DocumentCreate,
    workspace: Workspace,
    identity: CurrentIdentity,
):
    return workspace.create_document(
        identity,
        project_id,
        title=body.title,
        document_type=body.document_type,
        is_open=body.is_open,
    )


@router.get("/{document_number}", response_model=DocumentOut)
async def get_document(
    project_id: str,
    workspace: Workspace,
    identity: CurrentIdentity,
    identity_store: IdentityStore,
    document_number: DocumentNumber,
):
    doc = workspace.get_document(identity, project_id, document_number)
    # open-document reads grant no role and must not become a claim candidate
    if workspace.access.resolve_role(identity, project_id) is not None:
        try:
            identity_store.set_last_visited(project_id, document_number)
        except OSError as e:
            logger.warning(f"Failed to save last visited pointer: {e}")
    return doc


@router.delete("/{document_number}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    project_id: str,
    workspace: Workspace,
    identity: CurrentIdentity,
    document_number: DocumentNumber,
):
    workspace.delete_document(identity, project_id, document_number)


@router.get("/{document_number}/content", response_model=DocumentWithContent)
async def get_document_content(
    project_id: str,
    workspace: Workspace,
    identity: CurrentIdentity,
    document_number: DocumentNumber,
):
    return workspace.get_document(identity, project_id, document_number, include_content=True)


@router.put("/{document_number}/content", response_model=DocumentWithContent)
async def update_document_content(
    project_id: str,
    body: DocumentContentUpdate,
    workspace: Workspace,
    identity: CurrentIdentity,
    document_number: DocumentNumber,
):
    try:
        return workspace.write_content(
            identity,
            project_id,
            document_number,
            text_content=body.text_content,
            drawing_content=body.drawing_content,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{document_number}/visibility", response_model=DocumentOut)
async def set_document_visibility(
    project_id: str,
    body: DocumentVisibilityUpdate,
    workspace: Workspace,
    identity: CurrentIdentity,
    document_number: DocumentNumber,
):
    return workspace.set_document_open(identity, project_id, document_number, body.is_open)
