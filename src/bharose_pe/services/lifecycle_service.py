"""Lifecycle Service: reads, decides, writes.

This is the application layer around the pure lifecycle engine:
    1. Read the committed transaction (and the contract/dispute/proposal the
       event refers to) and copy them into domain views.
    2. Call domain.lifecycle.apply_event() to get the Transition.
    3. Inside one savepoint, compare-and-swap the status and apply every row
       write. If the status moved since step 1, nothing is written and
       StaleStateError is raised.
    4. Dispatch notifications best-effort and stage change-feed events.

REST routes and the simulation script both call into this service, so the
guard rules live in exactly one place.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from bharose_pe.domain.enums import (
    ContractStatus,
    DisputeStatus,
    LifecycleEvent,
    ProposalStatus,
    ProposalType,
    TransactionStatus,
)
from bharose_pe.domain.exceptions import (
    InvalidGuardError,
    ProposalNotFoundError,
    StaleStateError,
    TransactionNotFoundError,
    ValidationError,
)
from bharose_pe.domain.lifecycle import (
    CreateDispute,
    CreateEscalation,
    CreateProposal,
    EscalateDispute,
    RecordDelivery,
    RecordSettlement,
    ResolveDispute,
    RespondToProposal,
    UpdateContractStatus,
    apply_event,
)
from bharose_pe.domain.models import (
    ContractView,
    DisputeContext,
    DisputeView,
    EscalationPayload,
    ProposalResponsePayload,
    ProposalView,
    TransactionView,
)
from bharose_pe.domain.state_machine import (
    DisputeStateMachine,
    ProposalStateMachine,
    TransactionStateMachine,
    fire_transition,
    validate_transition,
)
from bharose_pe.infrastructure.change_feed import ChangeFeed, serialize_row
from bharose_pe.infrastructure.database.orm_models import (
    Dispute,
    DisputeProposal,
    Escalation,
    Transaction,
)
from bharose_pe.infrastructure.database.repositories import (
    ContractRepository,
    DisputeRepository,
    EscalationRepository,
    ProfileRepository,
    TransactionRepository,
    as_uuid,
)
from bharose_pe.logging_config import get_logger
from bharose_pe.services.notification_service import NotificationDispatcher

if TYPE_CHECKING:
    import uuid
    from datetime import date, datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from bharose_pe.domain.exceptions import SideEffectFailure
    from bharose_pe.domain.lifecycle import RowWrite, Transition
    from bharose_pe.domain.models import ActorContext
    from bharose_pe.infrastructure.database.orm_models import (
        Contract,
        Notification,
    )

logger = get_logger(__name__)

_CONTRACT_EVENTS = {LifecycleEvent.CONTRACT_ACCEPTED, LifecycleEvent.CONTRACT_REJECTED}
_DISPUTE_EVENTS = {
    LifecycleEvent.DISPUTE_RAISED,
    LifecycleEvent.DISPUTE_RESOLVED,
    LifecycleEvent.ESCALATION_REQUESTED,
    LifecycleEvent.PROPOSAL_CREATED,
    LifecycleEvent.PROPOSAL_ACCEPTED,
    LifecycleEvent.PROPOSAL_REJECTED,
}
_PROPOSAL_RESPONSES = {LifecycleEvent.PROPOSAL_ACCEPTED, LifecycleEvent.PROPOSAL_REJECTED}


@dataclass
class LifecycleResult:
    """Outcome of a successfully applied lifecycle event."""

    transaction: Transaction
    transition: Transition
    notifications: list[Notification] = field(default_factory=list)
    failed_side_effects: list[SideEffectFailure] = field(default_factory=list)
    created: dict[str, Any] = field(default_factory=dict)

    @property
    def new_status(self) -> str:
        return self.transition.new_status


def transaction_view(transaction: Transaction, names: dict[str, str] | None = None) -> TransactionView:
    names = names or {}
    return TransactionView(
        id=str(transaction.id),
        buyer_id=transaction.buyer_id,
        seller_id=transaction.seller_id,
        amount=transaction.amount,
        status=transaction.status,
        title=transaction.title,
        buyer_name=names.get(transaction.buyer_id),
        seller_name=names.get(transaction.seller_id),
    )


def contract_view(contract: Contract) -> ContractView:
    return ContractView(
        id=str(contract.id),
        transaction_id=str(contract.transaction_id),
        created_by=contract.created_by,
        recipient_id=contract.recipient_id,
        status=ContractStatus(contract.status),
        is_active=contract.is_active,
    )


def dispute_view(dispute: Dispute) -> DisputeView:
    return DisputeView(
        id=str(dispute.id),
        transaction_id=str(dispute.transaction_id),
        disputing_party_id=dispute.disputing_party_id,
        status=DisputeStatus(dispute.status),
        dispute_reason=dispute.dispute_reason,
    )


def proposal_view(proposal: DisputeProposal) -> ProposalView:
    return ProposalView(
        id=str(proposal.id),
        dispute_id=str(proposal.dispute_id),
        proposed_by=proposal.proposed_by,
        proposal_type=ProposalType(proposal.proposal_type),
        status=ProposalStatus(proposal.status),
        amount=proposal.amount,
    )


def _log_stale_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception()
    logger.info(
        "lifecycle.retrying_after_stale_state",
        transaction_id=exc.entity_id,
        expected=exc.expected,
        actual=exc.actual,
    )


class LifecycleService:
    """Applies lifecycle events to persisted transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._tx_repo = TransactionRepository(session)
        self._contract_repo = ContractRepository(session)
        self._dispute_repo = DisputeRepository(session)
        self._escalation_repo = EscalationRepository(session)
        self._profile_repo = ProfileRepository(session)
        self._dispatcher = NotificationDispatcher(session)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def create_transaction(
        self,
        actor: ActorContext,
        seller_id: str,
        title: str,
        amount: int,
        description: str | None = None,
        delivery_date: date | None = None,
    ) -> Transaction:
        """Open a new transaction in `created`, with the actor as buyer."""
        if seller_id == actor.user_id:
            raise ValidationError("Buyer and seller must be different users")
        if amount <= 0:
            raise ValidationError("Amount must be a positive number of rupees")
        if not title.strip():
            raise ValidationError("A transaction needs a title")
        if not await self._profile_repo.exists(seller_id):
            raise ValidationError("Seller profile not found")

        transaction = await self._tx_repo.create(
            Transaction(
                buyer_id=actor.user_id,
                seller_id=seller_id,
                title=title.strip(),
                amount=amount,
                description=(description or "").strip() or None,
                delivery_date=delivery_date,
                status=TransactionStatus.CREATED.value,
            )
        )
        ChangeFeed.stage(self._session, "transactions", serialize_row(transaction), op="insert")
        logger.info(
            "transaction.created",
            transaction_id=str(transaction.id),
            buyer_id=actor.user_id,
            seller_id=seller_id,
            amount=amount,
        )
        return transaction

    async def get_transaction(
        self, actor: ActorContext, transaction_id: uuid.UUID | str
    ) -> Transaction:
        """Fetch a transaction visible to the actor (a party, or an arbiter)."""
        transaction = await self._tx_repo.get_by_id(transaction_id)
        if transaction is None or not (
            actor.is_arbiter or actor.user_id in (transaction.buyer_id, transaction.seller_id)
        ):
            raise TransactionNotFoundError(str(transaction_id))
        return transaction

    async def list_transactions(
        self, actor: ActorContext, status: str | None = None
    ) -> list[Transaction]:
        return await self._tx_repo.list_for_party(actor.user_id, status=status)

    async def get_status(self, actor: ActorContext, transaction_id: uuid.UUID | str) -> dict:
        """Current status plus the events that may fire from it."""
        transaction = await self.get_transaction(actor, transaction_id)
        sm = TransactionStateMachine(transaction.status)
        return {
            "transaction_id": str(transaction.id),
            "status": transaction.status,
            "allowed_events": sm.get_allowed_events(),
            "is_terminal": sm.current_state.final,
        }

    # ------------------------------------------------------------------
    # apply_event
    # ------------------------------------------------------------------

    async def apply_event(
        self,
        transaction_id: uuid.UUID | str,
        event: LifecycleEvent | str,
        actor: ActorContext,
        payload: Any = None,
        *,
        expected_status: str | None = None,
        contract_id: str | None = None,
        proposal_id: str | None = None,
        now: datetime | None = None,
    ) -> LifecycleResult:
        """Apply one lifecycle event to a persisted transaction.

        Args:
            transaction_id: The transaction to act on.
            event: The LifecycleEvent (or its string value).
            actor: The authenticated caller.
            payload: The event's payload dataclass.
            expected_status: The status the caller last saw. If the committed
                status differs, StaleStateError is raised before anything runs.
            contract_id: Contract being answered (defaults to the active one).
            proposal_id: Proposal being answered (defaults to the payload's).
            now: Clock override for the escalation snapshot.

        Raises:
            TransactionNotFoundError, ProposalNotFoundError: Unknown row.
            InvalidGuardError: Event not allowed from the current status, or
                a payload guard failed.
            UnauthorizedActorError: The actor may not fire this event.
            StaleStateError: The status changed between read and write.
        """
        transaction = await self._tx_repo.get_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(str(transaction_id))
        if expected_status is not None and transaction.status != expected_status:
            raise StaleStateError(str(transaction.id), expected_status, transaction.status)

        try:
            event = LifecycleEvent(event)
        except ValueError as err:
            raise InvalidGuardError(
                transaction.status, str(event), reason=f"Unknown event '{event}'"
            ) from err
        # State guard first, before any related row is looked up.
        validate_transition(transaction.status, event.value)

        names = await self._profile_repo.get_names([transaction.buyer_id, transaction.seller_id])
        view = transaction_view(transaction, names)
        contract = await self._load_contract(transaction, event, contract_id)
        dispute = await self._load_dispute(transaction, event)
        proposal = await self._load_proposal(event, payload, proposal_id)
        if event is LifecycleEvent.ESCALATION_REQUESTED and isinstance(payload, EscalationPayload):
            payload = dataclasses.replace(
                payload, context=await self.dispute_context(transaction.id)
            )

        transition = apply_event(
            view,
            event,
            actor,
            payload,
            contract=contract,
            dispute=dispute,
            proposal=proposal,
            now=now,
        )

        created: dict[str, Any] = {}
        async with self._session.begin_nested():
            swapped = await self._tx_repo.compare_and_swap_status(
                transaction.id, transition.old_status, transition.new_status
            )
            if not swapped:
                actual = await self._tx_repo.get_status(transaction.id)
                logger.warning(
                    "lifecycle.stale_state",
                    transaction_id=str(transaction.id),
                    lifecycle_event=event.value,
                    expected=transition.old_status,
                    actual=actual,
                )
                raise StaleStateError(str(transaction.id), transition.old_status, actual)
            for write in transition.writes:
                await self._apply_write(transaction, transition, write, created)

        notifications, failures = await self._dispatcher.dispatch(transition.notifications)
        ChangeFeed.stage(self._session, "transactions", serialize_row(transaction))

        logger.info(
            "lifecycle.transition_applied",
            transaction_id=str(transaction.id),
            lifecycle_event=event.value,
            actor_id=actor.user_id,
            old_status=transition.old_status,
            new_status=transition.new_status,
            notifications=len(notifications),
            failed_side_effects=len(failures),
        )
        return LifecycleResult(
            transaction=transaction,
            transition=transition,
            notifications=notifications,
            failed_side_effects=failures,
            created=created,
        )

    async def apply_event_with_retry(
        self,
        transaction_id: uuid.UUID | str,
        event: LifecycleEvent | str,
        actor: ActorContext,
        payload: Any = None,
        **kwargs: Any,
    ) -> LifecycleResult:
        """apply_event(), re-reading and retrying once on StaleStateError.

        The retry re-evaluates every guard against the fresh status, so an
        event that is no longer legal fails with InvalidGuardError instead.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(2),
            retry=retry_if_exception_type(StaleStateError),
            before_sleep=_log_stale_retry,
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    kwargs.pop("expected_status", None)
                result = await self.apply_event(transaction_id, event, actor, payload, **kwargs)
        return result

    # ------------------------------------------------------------------
    # Reads feeding the engine
    # ------------------------------------------------------------------

    async def dispute_context(self, transaction_id: uuid.UUID) -> DisputeContext:
        """Disputes, messages and proposals of a transaction as plain dicts."""
        disputes = await self._dispute_repo.list_for_transaction(transaction_id)
        dispute_ids = [d.id for d in disputes]
        messages = await self._dispute_repo.list_messages(dispute_ids)
        proposals = await self._dispute_repo.list_proposals(dispute_ids)
        return DisputeContext(
            disputes=[d.to_snapshot() for d in disputes],
            messages=[m.to_snapshot() for m in messages],
            proposals=[p.to_snapshot() for p in proposals],
        )

    async def _load_contract(
        self, transaction: Transaction, event: LifecycleEvent, contract_id: str | None
    ) -> ContractView | None:
        if event not in _CONTRACT_EVENTS:
            return None
        if contract_id is not None:
            contract = await self._contract_repo.get_by_id(contract_id)
        else:
            contract = await self._contract_repo.get_active_for_transaction(transaction.id)
        return contract_view(contract) if contract is not None else None

    async def _load_dispute(
        self, transaction: Transaction, event: LifecycleEvent
    ) -> DisputeView | None:
        if event not in _DISPUTE_EVENTS:
            return None
        dispute = await self._dispute_repo.get_open_for_transaction(transaction.id)
        return dispute_view(dispute) if dispute is not None else None

    async def _load_proposal(
        self, event: LifecycleEvent, payload: Any, proposal_id: str | None
    ) -> ProposalView | None:
        if event not in _PROPOSAL_RESPONSES:
            return None
        if proposal_id is None and isinstance(payload, ProposalResponsePayload):
            proposal_id = payload.proposal_id
        if proposal_id is None:
            return None
        proposal = await self._dispute_repo.get_proposal(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id)
        return proposal_view(proposal)

    # ------------------------------------------------------------------
    # Row writes
    # ------------------------------------------------------------------

    async def _apply_write(
        self,
        transaction: Transaction,
        transition: Transition,
        write: RowWrite,
        created: dict[str, Any],
    ) -> None:
        if isinstance(write, UpdateContractStatus):
            contract = await self._contract_repo.get_by_id(write.contract_id)
            await self._contract_repo.update_status(
                contract, write.status.value, write.response_message
            )
        elif isinstance(write, CreateDispute):
            dispute = Dispute(
                transaction_id=transaction.id,
                contract_id=as_uuid(write.contract_id),
                disputing_party_id=write.disputing_party_id,
                dispute_reason=write.dispute_reason,
                description=write.description,
                evidence_files=list(write.evidence_files),
                status=DisputeStatus.ACTIVE.value,
            )
            try:
                await self._dispute_repo.create(dispute)
            except IntegrityError as err:
                raise InvalidGuardError(
                    transition.old_status,
                    transition.event.value,
                    reason="A dispute is already active on this transaction",
                ) from err
            created["dispute"] = dispute
            ChangeFeed.stage(self._session, "disputes", serialize_row(dispute), op="insert")
        elif isinstance(write, ResolveDispute):
            dispute = await self._dispute_repo.get_by_id(write.dispute_id)
            fire_transition(DisputeStateMachine, dispute.status, "resolve")
            await self._dispute_repo.mark_resolved(dispute, write.resolution_notes)
        elif isinstance(write, EscalateDispute):
            dispute = await self._dispute_repo.get_by_id(write.dispute_id)
            fire_transition(DisputeStateMachine, dispute.status, "escalate")
            await self._dispute_repo.mark_escalated(dispute)
        elif isinstance(write, CreateEscalation):
            escalation = await self._escalation_repo.create(
                Escalation(
                    transaction_id=transaction.id,
                    escalated_by=write.escalated_by,
                    escalation_reason=write.escalation_reason,
                    escalation_notes=write.escalation_notes,
                    evidence_files=list(write.evidence_files),
                    dispute_data=write.dispute_data,
                )
            )
            created["escalation"] = escalation
            logger.info(
                "escalation.created",
                escalation_id=str(escalation.id),
                transaction_id=str(transaction.id),
                messages=len(write.dispute_data.get("messages", [])),
            )
        elif isinstance(write, CreateProposal):
            proposal = await self._dispute_repo.add_proposal(
                DisputeProposal(
                    dispute_id=as_uuid(write.dispute_id),
                    proposed_by=write.proposed_by,
                    proposal_type=write.proposal_type,
                    amount=write.amount,
                    description=write.description,
                    status=ProposalStatus.PENDING.value,
                )
            )
            created["proposal"] = proposal
            ChangeFeed.stage(
                self._session, "dispute_proposals", serialize_row(proposal), op="insert"
            )
        elif isinstance(write, RespondToProposal):
            expected = ProposalStatus.PENDING.value
            fire_transition(
                ProposalStateMachine,
                expected,
                "accept" if write.status is ProposalStatus.ACCEPTED else "reject",
            )
            answered = await self._dispute_repo.respond_to_proposal(
                write.proposal_id, expected, write.status.value, write.responded_by
            )
            if not answered:
                actual = await self._dispute_repo.get_proposal_status(write.proposal_id)
                logger.warning(
                    "lifecycle.stale_proposal",
                    transaction_id=str(transaction.id),
                    proposal_id=write.proposal_id,
                    actual=actual,
                )
                raise StaleStateError(write.proposal_id, expected, actual, entity="Proposal")
        elif isinstance(write, RecordSettlement):
            await self._tx_repo.record_settlement(transaction, write.settlement.to_dict())
        elif isinstance(write, RecordDelivery):
            await self._tx_repo.record_delivery(transaction, write.proof_url, write.notes)
        else:
            raise TypeError(f"Unhandled row write: {type(write).__name__}")
