"""Pydantic schemas for disputes, chat messages, proposals and escalations."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from bharose_pe.domain.enums import MessageType

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class PostMessageRequest(BaseModel):
    message: str = Field(default="", max_length=5000)
    message_type: MessageType = MessageType.TEXT
    file_url: str | None = Field(default=None, max_length=2000)
    file_name: str | None = Field(default=None, max_length=255)


class AssignEscalationRequest(BaseModel):
    assignee_id: str | None = Field(
        default=None,
        max_length=64,
        description="Arbiter taking the escalation (defaults to the caller)",
    )


class ResolveEscalationRequest(BaseModel):
    resolution_notes: str = Field(..., min_length=1, max_length=5000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    transaction_id: uuid.UUID
    contract_id: uuid.UUID | None
    disputing_party_id: str
    dispute_reason: str
    description: str
    evidence_files: list[str]
    status: str
    resolution_notes: str | None
    resolved_at: datetime | None
    created_at: datetime


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    dispute_id: uuid.UUID
    sender_id: str
    message: str
    message_type: str
    file_url: str | None
    file_name: str | None
    created_at: datetime


class ProposalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    dispute_id: uuid.UUID
    proposed_by: str
    proposal_type: str
    amount: int | None
    description: str | None
    status: str
    responded_by: str | None
    responded_at: datetime | None
    created_at: datetime


class EvidenceUploadResponse(BaseModel):
    url: str
    bucket: str


class EscalationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    transaction_id: uuid.UUID
    escalated_by: str
    escalation_reason: str
    escalation_notes: str | None
    evidence_files: list[str]
    dispute_data: dict
    status: str
    assigned_to: str | None
    resolution_notes: str | None
    resolved_at: datetime | None
    created_at: datetime
