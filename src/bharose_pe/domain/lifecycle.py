"""Lifecycle Engine: a pure function of (transaction, event) -> Transition.

apply_event() validates the event against the TransactionStateMachine, checks
the actor and payload guards, and returns the new status together with every
side effect the caller must persist: row writes (RowWrite variants) and
notification records. It performs no I/O and holds no state; the service layer
is responsible for the compare-and-swap write and for dispatching
notifications.

Guard evaluation order (first failure wins, nothing is written):
    1. (state, event) must be a transition       -> InvalidGuardError
    2. the actor must be allowed to fire it       -> UnauthorizedActorError
    3. event payload and related rows must agree  -> InvalidGuardError
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from bharose_pe.domain import notifications as notices
from bharose_pe.domain.enums import (
    ContractStatus,
    DisputeStatus,
    LifecycleEvent,
    ProposalStatus,
)
from bharose_pe.domain.exceptions import InvalidGuardError, UnauthorizedActorError
from bharose_pe.domain.models import (
    ActorContext,
    ContractResponsePayload,
    DeliveryPayload,
    DisputeContext,
    DisputePayload,
    EscalationPayload,
    PaymentPayload,
    ProposalPayload,
    ProposalResponsePayload,
    ResolutionPayload,
)
from bharose_pe.domain.settlement import (
    Settlement,
    compute_settlement,
    settlement_from_apportionment,
)
from bharose_pe.domain.state_machine import TransactionStateMachine, fire_transition

if TYPE_CHECKING:
    from collections.abc import Callable

    from bharose_pe.domain.models import (
        ContractView,
        DisputeView,
        ProposalView,
        TransactionView,
    )
    from bharose_pe.domain.notifications import NotificationRecord


# ---------------------------------------------------------------------------
# Row writes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RowWrite:
    """Base class for row-level side effects."""


@dataclass(frozen=True)
class UpdateContractStatus(RowWrite):
    contract_id: str
    status: ContractStatus
    response_message: str | None = None


@dataclass(frozen=True)
class CreateDispute(RowWrite):
    transaction_id: str
    disputing_party_id: str
    dispute_reason: str
    description: str
    evidence_files: tuple[str, ...] = ()
    contract_id: str | None = None


@dataclass(frozen=True)
class ResolveDispute(RowWrite):
    dispute_id: str
    resolution_notes: str


@dataclass(frozen=True)
class EscalateDispute(RowWrite):
    dispute_id: str


@dataclass(frozen=True)
class CreateEscalation(RowWrite):
    transaction_id: str
    escalated_by: str
    escalation_reason: str
    escalation_notes: str | None
    evidence_files: tuple[str, ...]
    dispute_data: dict


@dataclass(frozen=True)
class CreateProposal(RowWrite):
    dispute_id: str
    proposed_by: str
    proposal_type: str
    amount: int | None
    description: str | None


@dataclass(frozen=True)
class RespondToProposal(RowWrite):
    proposal_id: str
    status: ProposalStatus
    responded_by: str


@dataclass(frozen=True)
class RecordSettlement(RowWrite):
    transaction_id: str
    settlement: Settlement


@dataclass(frozen=True)
class RecordDelivery(RowWrite):
    transaction_id: str
    delivered_by: str
    proof_url: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class Transition:
    """Result of a successful apply_event()."""

    event: LifecycleEvent
    actor_id: str
    old_status: str
    new_status: str
    writes: tuple[RowWrite, ...] = ()
    notifications: tuple[NotificationRecord, ...] = ()
    settlement: Settlement | None = None

    @property
    def changes_status(self) -> bool:
        return self.old_status != self.new_status


@dataclass(frozen=True)
class _EventInput:
    transaction: TransactionView
    event: LifecycleEvent
    actor: ActorContext
    payload: Any
    new_status: str
    contract: ContractView | None
    dispute: DisputeView | None
    proposal: ProposalView | None
    now: datetime


@dataclass
class _Effects:
    writes: list[RowWrite] = field(default_factory=list)
    notifications: list[NotificationRecord] = field(default_factory=list)
    settlement: Settlement | None = None


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def apply_event(
    transaction: TransactionView,
    event: LifecycleEvent | str,
    actor: ActorContext,
    payload: Any = None,
    *,
    contract: ContractView | None = None,
    dispute: DisputeView | None = None,
    proposal: ProposalView | None = None,
    now: datetime | None = None,
) -> Transition:
    """Compute the transition for `event` fired by `actor` against `transaction`.

    Args:
        transaction: The committed transaction, as read immediately before the write.
        event: A LifecycleEvent (or its string value).
        actor: The authenticated caller.
        payload: The event's payload dataclass (see domain/models.py).
        contract: The contract being answered (ContractAccepted / ContractRejected).
        dispute: The transaction's open dispute (dispute and proposal events).
        proposal: The proposal being answered (ProposalAccepted / ProposalRejected).
        now: Clock override for the escalation snapshot timestamp.

    Returns:
        A Transition with the new status, row writes, and notifications.

    Raises:
        InvalidGuardError: Event not allowed from the current state, or a
            payload guard failed.
        UnauthorizedActorError: The actor may not fire this event.
    """
    try:
        event = LifecycleEvent(event)
    except ValueError as err:
        raise InvalidGuardError(
            transaction.status, str(event), reason=f"Unknown event '{event}'"
        ) from err

    new_status = fire_transition(TransactionStateMachine, transaction.status, event.value)

    data = _EventInput(
        transaction=transaction,
        event=event,
        actor=actor,
        payload=payload,
        new_status=new_status,
        contract=contract,
        dispute=dispute,
        proposal=proposal,
        now=now or datetime.now(UTC),
    )
    effects = _HANDLERS[event](data)

    return Transition(
        event=event,
        actor_id=actor.user_id,
        old_status=transaction.status,
        new_status=new_status,
        writes=tuple(effects.writes),
        notifications=tuple(effects.notifications),
        settlement=effects.settlement,
    )


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def _fail(data: _EventInput, reason: str) -> InvalidGuardError:
    return InvalidGuardError(data.transaction.status, data.event.value, reason=reason)


def _require_party(data: _EventInput) -> None:
    if not data.transaction.is_party(data.actor.user_id):
        raise UnauthorizedActorError(
            data.actor.user_id, f"{data.event.value} on transaction {data.transaction.id}"
        )


def _require_user(data: _EventInput, user_id: str, role: str) -> None:
    if data.actor.user_id != user_id:
        raise UnauthorizedActorError(
            data.actor.user_id,
            f"{data.event.value} on transaction {data.transaction.id} (only the {role} can)",
        )


def _require_payload(data: _EventInput, payload_cls: type) -> Any:
    if not isinstance(data.payload, payload_cls):
        raise _fail(data, f"Event '{data.event.value}' requires a {payload_cls.__name__}")
    return data.payload


def _require_active_dispute(data: _EventInput) -> DisputeView:
    dispute = data.dispute
    if dispute is None or dispute.transaction_id != data.transaction.id:
        raise _fail(data, "No dispute is open on this transaction")
    if dispute.status is not DisputeStatus.ACTIVE:
        raise _fail(data, f"Dispute {dispute.id} is {dispute.status.value}, not active")
    return dispute


def _require_pending_proposal(data: _EventInput, dispute: DisputeView) -> ProposalView:
    proposal = data.proposal
    if proposal is None or proposal.dispute_id != dispute.id:
        raise _fail(data, "The proposal does not belong to the open dispute")
    if proposal.status is not ProposalStatus.PENDING:
        raise _fail(data, f"Proposal {proposal.id} is already {proposal.status.value}")
    if proposal.proposed_by == data.actor.user_id:
        raise UnauthorizedActorError(
            data.actor.user_id, f"respond to their own proposal {proposal.id}"
        )
    return proposal


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _on_contract_response(data: _EventInput) -> _Effects:
    contract = data.contract
    if contract is None or contract.transaction_id != data.transaction.id:
        raise _fail(data, "No contract is awaiting a response on this transaction")
    _require_user(data, contract.recipient_id, "contract recipient")
    if contract.status is not ContractStatus.PENDING or not contract.is_active:
        raise _fail(data, f"Contract {contract.id} is not awaiting a response")

    payload = data.payload or ContractResponsePayload()
    accepted = data.event is LifecycleEvent.CONTRACT_ACCEPTED
    status = ContractStatus.ACCEPTED if accepted else ContractStatus.REJECTED

    effects = _Effects()
    effects.writes.append(
        UpdateContractStatus(
            contract_id=contract.id,
            status=status,
            response_message=payload.response_message,
        )
    )
    effects.notifications.append(
        notices.contract_response(
            data.transaction,
            data.actor.user_id,
            contract.id,
            accepted=accepted,
            response_message=payload.response_message,
        )
    )
    return effects


def _on_payment_made(data: _EventInput) -> _Effects:
    _require_user(data, data.transaction.buyer_id, "buyer")
    payload = _require_payload(data, PaymentPayload)
    if payload.amount != data.transaction.amount:
        raise _fail(
            data,
            f"Payment amount {payload.amount} does not match the transaction "
            f"amount {data.transaction.amount}",
        )

    effects = _Effects()
    effects.notifications.append(
        notices.payment_received(data.transaction, data.actor.user_id)
    )
    return effects


def _on_work_completed(data: _EventInput) -> _Effects:
    _require_user(data, data.transaction.seller_id, "seller")
    payload = data.payload or DeliveryPayload()

    effects = _Effects()
    effects.writes.append(
        RecordDelivery(
            transaction_id=data.transaction.id,
            delivered_by=data.actor.user_id,
            proof_url=payload.proof_url,
            notes=payload.notes,
        )
    )
    return effects


def _on_delivery_confirmed(data: _EventInput) -> _Effects:
    _require_user(data, data.transaction.buyer_id, "buyer")
    settlement = Settlement(
        buyer_refund=0,
        seller_release=data.transaction.amount,
        resolution_type="release_full",
        total_amount=data.transaction.amount,
    )

    effects = _Effects(settlement=settlement)
    effects.writes.append(RecordSettlement(data.transaction.id, settlement))
    effects.notifications.append(
        notices.funds_released(data.transaction, data.actor.user_id)
    )
    return effects


def _on_dispute_raised(data: _EventInput) -> _Effects:
    _require_party(data)
    payload = _require_payload(data, DisputePayload)
    if not payload.reason.strip():
        raise _fail(data, "A dispute needs a reason")
    if data.dispute is not None and data.dispute.status is DisputeStatus.ACTIVE:
        raise _fail(data, f"Dispute {data.dispute.id} is already active")

    effects = _Effects()
    effects.writes.append(
        CreateDispute(
            transaction_id=data.transaction.id,
            disputing_party_id=data.actor.user_id,
            dispute_reason=payload.reason.strip(),
            description=payload.description,
            evidence_files=tuple(payload.evidence_files),
            contract_id=payload.contract_id,
        )
    )
    effects.notifications.append(
        notices.dispute_raised(data.transaction, data.actor.user_id, payload.reason.strip())
    )
    return effects


def _resolution_effects(
    data: _EventInput, dispute: DisputeView, settlement: Settlement, notes: str
) -> _Effects:
    effects = _Effects(settlement=settlement)
    effects.writes.append(ResolveDispute(dispute_id=dispute.id, resolution_notes=notes))
    effects.writes.append(RecordSettlement(data.transaction.id, settlement))
    return effects


def _on_dispute_resolved(data: _EventInput) -> _Effects:
    if not data.actor.is_arbiter:
        raise UnauthorizedActorError(
            data.actor.user_id, f"resolve disputes on transaction {data.transaction.id}"
        )
    dispute = _require_active_dispute(data)
    payload = _require_payload(data, ResolutionPayload)
    if not payload.resolution_notes.strip():
        raise _fail(data, "Resolving a dispute requires resolution notes")
    settlement = settlement_from_apportionment(
        payload.buyer_refund,
        payload.seller_release,
        data.transaction.amount,
        current_state=data.transaction.status,
        event=data.event.value,
    )

    effects = _resolution_effects(data, dispute, settlement, payload.resolution_notes.strip())
    effects.notifications.extend(
        notices.dispute_resolved(data.transaction, data.actor.user_id, settlement)
    )
    return effects


def _on_escalation_requested(data: _EventInput) -> _Effects:
    _require_party(data)
    dispute = _require_active_dispute(data)
    payload = _require_payload(data, EscalationPayload)
    if not payload.reason.strip():
        raise _fail(data, "An escalation needs a reason")

    effects = _Effects()
    effects.writes.append(EscalateDispute(dispute_id=dispute.id))
    effects.writes.append(
        CreateEscalation(
            transaction_id=data.transaction.id,
            escalated_by=data.actor.user_id,
            escalation_reason=payload.reason.strip(),
            escalation_notes=payload.notes,
            evidence_files=tuple(payload.evidence_files),
            dispute_data=build_dispute_snapshot(payload.context, data.now),
        )
    )
    return effects


def _on_proposal_created(data: _EventInput) -> _Effects:
    _require_party(data)
    dispute = _require_active_dispute(data)
    payload = _require_payload(data, ProposalPayload)
    # Validates the amount against the escrow before anything is stored.
    compute_settlement(
        payload.proposal_type,
        data.transaction.amount,
        payload.amount,
        current_state=data.transaction.status,
        event=data.event.value,
    )
    amount = payload.amount if payload.proposal_type.is_partial else None

    effects = _Effects()
    effects.writes.append(
        CreateProposal(
            dispute_id=dispute.id,
            proposed_by=data.actor.user_id,
            proposal_type=payload.proposal_type.value,
            amount=amount,
            description=payload.description,
        )
    )
    effects.notifications.append(
        notices.proposal_created(
            data.transaction, data.actor.user_id, payload.proposal_type, amount
        )
    )
    return effects


def _on_proposal_rejected(data: _EventInput) -> _Effects:
    _require_party(data)
    dispute = _require_active_dispute(data)
    proposal = _require_pending_proposal(data, dispute)

    effects = _Effects()
    effects.writes.append(
        RespondToProposal(proposal.id, ProposalStatus.REJECTED, data.actor.user_id)
    )
    effects.notifications.append(
        notices.proposal_rejected(data.transaction, data.actor.user_id, proposal.id)
    )
    return effects


def _on_proposal_accepted(data: _EventInput) -> _Effects:
    _require_party(data)
    dispute = _require_active_dispute(data)
    proposal = _require_pending_proposal(data, dispute)
    settlement = compute_settlement(
        proposal.proposal_type,
        data.transaction.amount,
        proposal.amount,
        current_state=data.transaction.status,
        event=data.event.value,
    )
    detail = (
        notices.format_rupees(proposal.amount) if proposal.amount else "full amount"
    )
    notes = f"Proposal accepted: {proposal.proposal_type.value} {detail}"

    effects = _resolution_effects(data, dispute, settlement, notes)
    effects.writes.insert(
        0, RespondToProposal(proposal.id, ProposalStatus.ACCEPTED, data.actor.user_id)
    )
    effects.notifications.append(
        notices.proposal_accepted(
            data.transaction, data.actor.user_id, proposal.id, settlement
        )
    )
    return effects


_HANDLERS: dict[LifecycleEvent, Callable[[_EventInput], _Effects]] = {
    LifecycleEvent.CONTRACT_ACCEPTED: _on_contract_response,
    LifecycleEvent.CONTRACT_REJECTED: _on_contract_response,
    LifecycleEvent.PAYMENT_MADE: _on_payment_made,
    LifecycleEvent.WORK_COMPLETED: _on_work_completed,
    LifecycleEvent.DELIVERY_CONFIRMED: _on_delivery_confirmed,
    LifecycleEvent.DISPUTE_RAISED: _on_dispute_raised,
    LifecycleEvent.DISPUTE_RESOLVED: _on_dispute_resolved,
    LifecycleEvent.ESCALATION_REQUESTED: _on_escalation_requested,
    LifecycleEvent.PROPOSAL_CREATED: _on_proposal_created,
    LifecycleEvent.PROPOSAL_REJECTED: _on_proposal_rejected,
    LifecycleEvent.PROPOSAL_ACCEPTED: _on_proposal_accepted,
}


# ---------------------------------------------------------------------------
# Escalation snapshot
# ---------------------------------------------------------------------------


def build_dispute_snapshot(context: DisputeContext, now: datetime) -> dict:
    """Freeze the dispute context into plain JSON values.

    The result shares no objects with `context`: later changes to the
    dispute (new messages, proposal responses) never reach the snapshot.
    """
    snapshot = {
        "disputes": copy.deepcopy(context.disputes),
        "messages": copy.deepcopy(context.messages),
        "proposals": copy.deepcopy(context.proposals),
        "escalation_timestamp": now.isoformat(),
    }
    return json.loads(json.dumps(snapshot, default=str))
