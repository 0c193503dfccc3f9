"""Escalation REST API routes (arbiter workflow).

Routes:
    GET    /api/v1/escalations               : All escalations (arbiter) or the caller's
    GET    /api/v1/escalations/{id}          : Get escalation with its dispute snapshot
    POST   /api/v1/escalations/{id}/assign   : Take an escalation (arbiter)
    POST   /api/v1/escalations/{id}/resolve  : Close an escalation (arbiter)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bharose_pe.api.deps import get_actor, get_db_session
from bharose_pe.domain.models import ActorContext
from bharose_pe.schemas.disputes import (
    AssignEscalationRequest,
    EscalationResponse,
    ResolveEscalationRequest,
)
from bharose_pe.services.escalation_service import EscalationService

router = APIRouter(prefix="/api/v1/escalations", tags=["Escalations"])


@router.get("", response_model=list[EscalationResponse], summary="List escalations")
async def list_escalations(
    status: str | None = Query(default=None),
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> list[EscalationResponse]:
    escalations = await EscalationService(session).list_escalations(actor, status=status)
    return [EscalationResponse.model_validate(e) for e in escalations]


@router.get("/{escalation_id}", response_model=EscalationResponse, summary="Get an escalation")
async def get_escalation(
    escalation_id: uuid.UUID,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> EscalationResponse:
    escalation = await EscalationService(session).get_escalation(actor, escalation_id)
    return EscalationResponse.model_validate(escalation)


@router.post(
    "/{escalation_id}/assign",
    response_model=EscalationResponse,
    summary="Assign an escalation",
)
async def assign_escalation(
    escalation_id: uuid.UUID,
    request: AssignEscalationRequest | None = None,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> EscalationResponse:
    assignee = request.assignee_id if request else None
    escalation = await EscalationService(session).assign(actor, escalation_id, assignee)
    return EscalationResponse.model_validate(escalation)


@router.post(
    "/{escalation_id}/resolve",
    response_model=EscalationResponse,
    summary="Resolve an escalation",
)
async def resolve_escalation(
    escalation_id: uuid.UUID,
    request: ResolveEscalationRequest,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> EscalationResponse:
    escalation = await EscalationService(session).resolve(
        actor, escalation_id, request.resolution_notes
    )
    return EscalationResponse.model_validate(escalation)
