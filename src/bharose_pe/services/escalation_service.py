"""Escalation Service: arbiter handling of escalated disputes.

Escalations are created by the escalation_requested lifecycle event. From
there an arbiter assigns and resolves them through EscalationStateMachine.
The frozen `dispute_data` snapshot is never touched here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from bharose_pe.domain.exceptions import (
    EscalationNotFoundError,
    UnauthorizedActorError,
    ValidationError,
)
from bharose_pe.domain.state_machine import EscalationStateMachine, fire_transition
from bharose_pe.infrastructure.database.repositories import (
    EscalationRepository,
    TransactionRepository,
)
from bharose_pe.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from bharose_pe.domain.models import ActorContext
    from bharose_pe.infrastructure.database.orm_models import Escalation

logger = get_logger(__name__)


class EscalationService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._repo = EscalationRepository(session)
        self._tx_repo = TransactionRepository(session)

    async def list_escalations(
        self, actor: ActorContext, status: str | None = None
    ) -> list[Escalation]:
        """Arbiters see every escalation; parties see those on their transactions."""
        if actor.is_arbiter:
            return await self._repo.list_all(status=status)
        escalations = await self._repo.list_for_party(actor.user_id)
        if status is not None:
            escalations = [e for e in escalations if e.status == status]
        return escalations

    async def get_escalation(
        self, actor: ActorContext, escalation_id: uuid.UUID | str
    ) -> Escalation:
        escalation = await self._repo.get_by_id(escalation_id)
        if escalation is None:
            raise EscalationNotFoundError(str(escalation_id))
        if not actor.is_arbiter:
            transaction = await self._tx_repo.get_by_id(escalation.transaction_id)
            if actor.user_id not in (transaction.buyer_id, transaction.seller_id):
                raise EscalationNotFoundError(str(escalation_id))
        return escalation

    async def assign(
        self,
        actor: ActorContext,
        escalation_id: uuid.UUID | str,
        assignee_id: str | None = None,
    ) -> Escalation:
        """Take (or hand over) an escalation. Moves pending -> in_progress."""
        escalation = await self._get_for_arbiter(actor, escalation_id, "assign escalations")
        new_status = fire_transition(EscalationStateMachine, escalation.status, "assign")
        assignee = assignee_id or actor.user_id
        await self._repo.update_handling(escalation, new_status, assigned_to=assignee)
        logger.info(
            "escalation.assigned",
            escalation_id=str(escalation.id),
            assigned_to=assignee,
            by=actor.user_id,
        )
        return escalation

    async def resolve(
        self,
        actor: ActorContext,
        escalation_id: uuid.UUID | str,
        resolution_notes: str,
    ) -> Escalation:
        escalation = await self._get_for_arbiter(actor, escalation_id, "resolve escalations")
        if not resolution_notes.strip():
            raise ValidationError("Resolving an escalation requires resolution notes")
        new_status = fire_transition(EscalationStateMachine, escalation.status, "resolve")
        await self._repo.update_handling(
            escalation,
            new_status,
            assigned_to=escalation.assigned_to or actor.user_id,
            resolution_notes=resolution_notes.strip(),
        )
        logger.info(
            "escalation.resolved",
            escalation_id=str(escalation.id),
            transaction_id=str(escalation.transaction_id),
            by=actor.user_id,
        )
        return escalation

    async def _get_for_arbiter(
        self, actor: ActorContext, escalation_id: uuid.UUID | str, action: str
    ) -> Escalation:
        if not actor.is_arbiter:
            raise UnauthorizedActorError(actor.user_id, action)
        escalation = await self._repo.get_by_id(escalation_id)
        if escalation is None:
            raise EscalationNotFoundError(str(escalation_id))
        return escalation
