"""Pydantic API schemas."""

from bharose_pe.schemas.disputes import (
    AssignEscalationRequest,
    DisputeResponse,
    EscalationResponse,
    EvidenceUploadResponse,
    MessageResponse,
    PostMessageRequest,
    ProposalResponse,
    ResolveEscalationRequest,
)
from bharose_pe.schemas.notifications import (
    HealthResponse,
    MarkAllReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from bharose_pe.schemas.transactions import (
    ApplyEventRequest,
    ContractResponse,
    ContractSendResponse,
    CreateTransactionRequest,
    LifecycleEventResponse,
    SendContractRequest,
    TransactionResponse,
    TransactionStatusResponse,
)

__all__ = [
    "ApplyEventRequest",
    "AssignEscalationRequest",
    "ContractResponse",
    "ContractSendResponse",
    "CreateTransactionRequest",
    "DisputeResponse",
    "EscalationResponse",
    "EvidenceUploadResponse",
    "HealthResponse",
    "LifecycleEventResponse",
    "MarkAllReadResponse",
    "MessageResponse",
    "NotificationResponse",
    "PostMessageRequest",
    "ProposalResponse",
    "ResolveEscalationRequest",
    "SendContractRequest",
    "TransactionResponse",
    "TransactionStatusResponse",
    "UnreadCountResponse",
]
