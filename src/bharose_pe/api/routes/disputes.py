"""Dispute REST API routes.

Disputes are opened, resolved and escalated through lifecycle events on the
transaction. These endpoints cover reading them, the chat, and evidence.

Routes:
    GET    /api/v1/disputes                 : List disputes on the caller's transactions
    GET    /api/v1/disputes/{id}            : Get dispute details
    GET    /api/v1/disputes/{id}/messages   : Chat history, oldest first
    POST   /api/v1/disputes/{id}/messages   : Post a chat message
    GET    /api/v1/disputes/{id}/proposals  : Settlement proposals, oldest first
    POST   /api/v1/disputes/{id}/evidence   : Upload an evidence file
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from bharose_pe.api.deps import get_actor, get_blob_store, get_db_session
from bharose_pe.domain.models import ActorContext
from bharose_pe.infrastructure.blob_store import LocalBlobStore
from bharose_pe.schemas.disputes import (
    DisputeResponse,
    EvidenceUploadResponse,
    MessageResponse,
    PostMessageRequest,
    ProposalResponse,
)
from bharose_pe.services.dispute_service import DisputeService

router = APIRouter(prefix="/api/v1/disputes", tags=["Disputes"])


@router.get("", response_model=list[DisputeResponse], summary="List disputes")
async def list_disputes(
    status: str | None = Query(default=None),
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> list[DisputeResponse]:
    disputes = await DisputeService(session).list_disputes(actor, status=status)
    return [DisputeResponse.model_validate(d) for d in disputes]


@router.get("/{dispute_id}", response_model=DisputeResponse, summary="Get a dispute")
async def get_dispute(
    dispute_id: uuid.UUID,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> DisputeResponse:
    dispute, _ = await DisputeService(session).get_dispute(actor, dispute_id)
    return DisputeResponse.model_validate(dispute)


@router.get(
    "/{dispute_id}/messages",
    response_model=list[MessageResponse],
    summary="List chat messages",
)
async def list_messages(
    dispute_id: uuid.UUID,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> list[MessageResponse]:
    messages = await DisputeService(session).list_messages(actor, dispute_id)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post(
    "/{dispute_id}/messages",
    response_model=MessageResponse,
    status_code=201,
    summary="Post a chat message",
)
async def post_message(
    dispute_id: uuid.UUID,
    request: PostMessageRequest,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    """Append a message. Allowed while the dispute is active or escalated."""
    message = await DisputeService(session).post_message(
        actor,
        dispute_id,
        request.message,
        message_type=request.message_type,
        file_url=request.file_url,
        file_name=request.file_name,
    )
    return MessageResponse.model_validate(message)


@router.get(
    "/{dispute_id}/proposals",
    response_model=list[ProposalResponse],
    summary="List settlement proposals",
)
async def list_proposals(
    dispute_id: uuid.UUID,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> list[ProposalResponse]:
    proposals = await DisputeService(session).list_proposals(actor, dispute_id)
    return [ProposalResponse.model_validate(p) for p in proposals]


@router.post(
    "/{dispute_id}/evidence",
    response_model=EvidenceUploadResponse,
    status_code=201,
    summary="Upload evidence",
)
async def upload_evidence(
    dispute_id: uuid.UUID,
    file: UploadFile = File(...),
    bucket: str = Form(default="dispute-evidence"),
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
    blob_store: LocalBlobStore = Depends(get_blob_store),
) -> EvidenceUploadResponse:
    data = await file.read()
    url = await DisputeService(session, blob_store).upload_evidence(
        actor, dispute_id, file.filename or "upload", data, bucket=bucket
    )
    return EvidenceUploadResponse(url=url, bucket=bucket)
