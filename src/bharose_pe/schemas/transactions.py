"""Pydantic schemas for the transaction and lifecycle API.

Request payloads are validated here for shape (types, lengths, signs) and
converted into the domain's frozen payload dataclasses with `to_domain()`.
Business guards (who may fire what, amounts matching the escrow) stay in
the lifecycle engine.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from bharose_pe.domain.enums import LifecycleEvent, ProposalType
from bharose_pe.domain.models import (
    ContractResponsePayload,
    DeliveryPayload,
    DisputePayload,
    EscalationPayload,
    PaymentPayload,
    ProposalPayload,
    ProposalResponsePayload,
    ResolutionPayload,
)

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateTransactionRequest(BaseModel):
    """Request body for opening a transaction. The caller becomes the buyer."""

    seller_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200, examples=["iPhone 13, 128GB"])
    amount: int = Field(..., gt=0, description="Escrow amount in whole rupees", examples=[1000])
    description: str | None = Field(default=None, max_length=5000)
    delivery_date: date | None = None


class SendContractRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=50_000)
    terms: str | None = Field(default=None, max_length=20_000)


# --- Per-event payloads ---


class ContractResponseIn(BaseModel):
    response_message: str | None = Field(default=None, max_length=2000)

    def to_domain(self) -> ContractResponsePayload:
        return ContractResponsePayload(response_message=self.response_message)


class PaymentIn(BaseModel):
    amount: int = Field(..., gt=0)
    payment_reference: str | None = Field(default=None, max_length=200)

    def to_domain(self) -> PaymentPayload:
        return PaymentPayload(amount=self.amount, payment_reference=self.payment_reference)


class DeliveryIn(BaseModel):
    proof_url: str | None = Field(default=None, max_length=2000)
    notes: str | None = Field(default=None, max_length=5000)
    delivered_on: date | None = None

    def to_domain(self) -> DeliveryPayload:
        return DeliveryPayload(
            proof_url=self.proof_url, notes=self.notes, delivered_on=self.delivered_on
        )


class DisputeIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="", max_length=5000)
    evidence_files: list[str] = Field(default_factory=list, max_length=20)
    contract_id: uuid.UUID | None = None

    def to_domain(self) -> DisputePayload:
        return DisputePayload(
            reason=self.reason,
            description=self.description,
            evidence_files=tuple(self.evidence_files),
            contract_id=str(self.contract_id) if self.contract_id else None,
        )


class ResolutionIn(BaseModel):
    buyer_refund: int = Field(..., ge=0)
    seller_release: int = Field(..., ge=0)
    resolution_notes: str = Field(..., min_length=1, max_length=5000)

    def to_domain(self) -> ResolutionPayload:
        return ResolutionPayload(
            buyer_refund=self.buyer_refund,
            seller_release=self.seller_release,
            resolution_notes=self.resolution_notes,
        )


class EscalationIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    notes: str | None = Field(default=None, max_length=5000)
    evidence_files: list[str] = Field(default_factory=list, max_length=20)

    def to_domain(self) -> EscalationPayload:
        # The dispute context is read by the service at write time.
        return EscalationPayload(
            reason=self.reason, notes=self.notes, evidence_files=tuple(self.evidence_files)
        )


class ProposalIn(BaseModel):
    proposal_type: ProposalType
    amount: int | None = Field(default=None, gt=0)
    description: str | None = Field(default=None, max_length=2000)

    def to_domain(self) -> ProposalPayload:
        return ProposalPayload(
            proposal_type=self.proposal_type, amount=self.amount, description=self.description
        )


class ProposalResponseIn(BaseModel):
    proposal_id: uuid.UUID

    def to_domain(self) -> ProposalResponsePayload:
        return ProposalResponsePayload(proposal_id=str(self.proposal_id))


PAYLOAD_SCHEMAS: dict[LifecycleEvent, type[BaseModel]] = {
    LifecycleEvent.CONTRACT_ACCEPTED: ContractResponseIn,
    LifecycleEvent.CONTRACT_REJECTED: ContractResponseIn,
    LifecycleEvent.PAYMENT_MADE: PaymentIn,
    LifecycleEvent.WORK_COMPLETED: DeliveryIn,
    LifecycleEvent.DELIVERY_CONFIRMED: DeliveryIn,
    LifecycleEvent.DISPUTE_RAISED: DisputeIn,
    LifecycleEvent.DISPUTE_RESOLVED: ResolutionIn,
    LifecycleEvent.ESCALATION_REQUESTED: EscalationIn,
    LifecycleEvent.PROPOSAL_CREATED: ProposalIn,
    LifecycleEvent.PROPOSAL_ACCEPTED: ProposalResponseIn,
    LifecycleEvent.PROPOSAL_REJECTED: ProposalResponseIn,
}


class ApplyEventRequest(BaseModel):
    """Request body for POST /transactions/{id}/events."""

    event: LifecycleEvent
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific fields, e.g. {'amount': 1000} for payment_made",
    )
    expected_status: str | None = Field(
        default=None,
        description="Status the client last saw; a mismatch fails with STALE_STATE",
    )
    contract_id: uuid.UUID | None = Field(
        default=None,
        description="Contract being answered (defaults to the transaction's active contract)",
    )

    @model_validator(mode="after")
    def _check_payload(self) -> ApplyEventRequest:
        try:
            PAYLOAD_SCHEMAS[self.event].model_validate(self.payload)
        except ValidationError as exc:
            raise ValueError(
                f"Invalid payload for {self.event.value}: {exc.error_count()} error(s): "
                + "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in exc.errors()
                )
            ) from exc
        return self

    def domain_payload(self) -> Any:
        return PAYLOAD_SCHEMAS[self.event].model_validate(self.payload).to_domain()


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    buyer_id: str
    seller_id: str
    title: str
    amount: int
    description: str | None
    delivery_date: date | None
    status: str
    delivery_proof_url: str | None
    delivery_notes: str | None
    resolution_breakdown: dict | None
    created_at: datetime
    updated_at: datetime


class ContractResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    transaction_id: uuid.UUID
    content: str
    terms: str | None
    created_by: str
    recipient_id: str
    status: str
    is_active: bool
    response_message: str | None
    responded_at: datetime | None
    created_at: datetime


class SideEffectFailureResponse(BaseModel):
    effect: str
    recipient_id: str
    reason: str


class LifecycleEventResponse(BaseModel):
    """Result of a successfully applied lifecycle event."""

    transaction: TransactionResponse
    event: LifecycleEvent
    old_status: str
    new_status: str
    notifications_sent: int
    failed_side_effects: list[SideEffectFailureResponse] = Field(default_factory=list)
    settlement: dict | None = None
    created: dict[str, uuid.UUID] = Field(
        default_factory=dict,
        description="Ids of rows created by the event (dispute, proposal, escalation)",
    )


class ContractSendResponse(BaseModel):
    contract: ContractResponse
    superseded_contract_id: uuid.UUID | None = None
    failed_side_effects: list[SideEffectFailureResponse] = Field(default_factory=list)


class TransactionStatusResponse(BaseModel):
    """Lightweight status check response."""

    transaction_id: uuid.UUID
    status: str
    is_terminal: bool
    allowed_events: list[str] = Field(
        description="Lifecycle events that can fire from the current status"
    )
