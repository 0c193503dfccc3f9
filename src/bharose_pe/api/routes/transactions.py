"""Transaction REST API routes.

Every state change goes through POST /{id}/events, the HTTP face of
LifecycleService.apply_event(). The remaining endpoints create and read.

Routes:
    POST   /api/v1/transactions                : Open a transaction (caller = buyer)
    GET    /api/v1/transactions                : List the caller's transactions
    GET    /api/v1/transactions/{id}           : Get transaction details
    GET    /api/v1/transactions/{id}/status    : Status and allowed events
    POST   /api/v1/transactions/{id}/events    : Apply a lifecycle event
    POST   /api/v1/transactions/{id}/contracts : Send a contract to the counterparty
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bharose_pe.api.deps import get_actor, get_db_session
from bharose_pe.domain.models import ActorContext
from bharose_pe.logging_config import get_logger, lifecycle_context
from bharose_pe.schemas.transactions import (
    ApplyEventRequest,
    ContractResponse,
    ContractSendResponse,
    CreateTransactionRequest,
    LifecycleEventResponse,
    SendContractRequest,
    SideEffectFailureResponse,
    TransactionResponse,
    TransactionStatusResponse,
)
from bharose_pe.services.contract_service import ContractService
from bharose_pe.services.lifecycle_service import LifecycleService

router = APIRouter(prefix="/api/v1/transactions", tags=["Transactions"])
logger = get_logger(__name__)


def _failures(failures) -> list[SideEffectFailureResponse]:  # noqa: ANN001
    return [
        SideEffectFailureResponse(effect=f.effect, recipient_id=f.recipient_id, reason=f.reason)
        for f in failures
    ]


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=201,
    summary="Open a new transaction",
)
async def create_transaction(
    request: CreateTransactionRequest,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> TransactionResponse:
    """Create a transaction in `created` with the caller as buyer."""
    svc = LifecycleService(session)
    transaction = await svc.create_transaction(
        actor,
        seller_id=request.seller_id,
        title=request.title,
        amount=request.amount,
        description=request.description,
        delivery_date=request.delivery_date,
    )
    return TransactionResponse.model_validate(transaction)


@router.get(
    "",
    response_model=list[TransactionResponse],
    summary="List the caller's transactions",
)
async def list_transactions(
    status: str | None = Query(default=None),
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> list[TransactionResponse]:
    svc = LifecycleService(session)
    transactions = await svc.list_transactions(actor, status=status)
    return [TransactionResponse.model_validate(t) for t in transactions]


@router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get transaction details",
)
async def get_transaction(
    transaction_id: uuid.UUID,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> TransactionResponse:
    svc = LifecycleService(session)
    transaction = await svc.get_transaction(actor, transaction_id)
    return TransactionResponse.model_validate(transaction)


@router.get(
    "/{transaction_id}/status",
    response_model=TransactionStatusResponse,
    summary="Lightweight status check",
)
async def get_transaction_status(
    transaction_id: uuid.UUID,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> TransactionStatusResponse:
    """Return the current status and which lifecycle events can fire from it."""
    svc = LifecycleService(session)
    return TransactionStatusResponse(**await svc.get_status(actor, transaction_id))


# ---------------------------------------------------------------------------
# Lifecycle events
# ---------------------------------------------------------------------------


@router.post(
    "/{transaction_id}/events",
    response_model=LifecycleEventResponse,
    summary="Apply a lifecycle event",
)
async def apply_event(
    transaction_id: uuid.UUID,
    request: ApplyEventRequest,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> LifecycleEventResponse:
    """Fire a lifecycle event against the transaction.

    Fails with 409 INVALID_GUARD when the event is not allowed from the
    current status, 403 UNAUTHORIZED_ACTOR when the caller may not fire it,
    and 409 STALE_STATE when the status moved underneath the caller.
    """
    svc = LifecycleService(session)
    with lifecycle_context(str(transaction_id), actor.user_id):
        result = await svc.apply_event(
            transaction_id,
            request.event,
            actor,
            request.domain_payload(),
            expected_status=request.expected_status,
            contract_id=str(request.contract_id) if request.contract_id else None,
        )
    transition = result.transition
    return LifecycleEventResponse(
        transaction=TransactionResponse.model_validate(result.transaction),
        event=transition.event,
        old_status=transition.old_status,
        new_status=transition.new_status,
        notifications_sent=len(result.notifications),
        failed_side_effects=_failures(result.failed_side_effects),
        settlement=transition.settlement.to_dict() if transition.settlement else None,
        created={name: row.id for name, row in result.created.items()},
    )


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@router.post(
    "/{transaction_id}/contracts",
    response_model=ContractSendResponse,
    status_code=201,
    summary="Send a contract to the counterparty",
)
async def send_contract(
    transaction_id: uuid.UUID,
    request: SendContractRequest,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> ContractSendResponse:
    svc = ContractService(session)
    result = await svc.send_contract(actor, transaction_id, request.content, request.terms)
    return ContractSendResponse(
        contract=ContractResponse.model_validate(result.contract),
        superseded_contract_id=result.superseded.id if result.superseded else None,
        failed_side_effects=_failures(result.failed_side_effects),
    )
