"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Row-level authorization lives here: every `*_for_party` query only returns
rows where the caller is buyer, seller, sender or recipient.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select, update

from bharose_pe.infrastructure.database.orm_models import (
    Contract,
    Dispute,
    DisputeMessage,
    DisputeProposal,
    Escalation,
    Notification,
    Profile,
    Transaction,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def as_uuid(value: uuid.UUID | str | None) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


class ProfileRepository:
    """Data access for user profiles."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_names(self, user_ids: list[str]) -> dict[str, str]:
        """Map user ids to full names (users without a profile are omitted)."""
        if not user_ids:
            return {}
        result = await self._session.execute(
            select(Profile.user_id, Profile.full_name).where(Profile.user_id.in_(user_ids))
        )
        return {user_id: name for user_id, name in result.all() if name}

    async def exists(self, user_id: str) -> bool:
        return await self._session.get(Profile, user_id) is not None

    async def upsert(self, user_id: str, full_name: str) -> Profile:
        profile = await self._session.get(Profile, user_id)
        if profile is None:
            profile = Profile(user_id=user_id, full_name=full_name)
            self._session.add(profile)
        else:
            profile.full_name = full_name
        await self._session.flush()
        return profile


class TransactionRepository:
    """Data access for escrow transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, transaction: Transaction) -> Transaction:
        """Insert a new transaction."""
        self._session.add(transaction)
        await self._session.flush()
        return transaction

    async def get_by_id(self, transaction_id: uuid.UUID | str) -> Transaction | None:
        """Fetch a transaction by its UUID, refreshing any copy already in the session."""
        result = await self._session.execute(
            select(Transaction)
            .where(Transaction.id == as_uuid(transaction_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_status(self, transaction_id: uuid.UUID | str) -> str | None:
        """Read the committed status without loading the row into the session."""
        result = await self._session.execute(
            select(Transaction.status).where(Transaction.id == as_uuid(transaction_id))
        )
        return result.scalar_one_or_none()

    async def list_for_party(
        self, user_id: str, status: str | None = None
    ) -> list[Transaction]:
        """Fetch transactions where the user is buyer or seller, newest first."""
        query = select(Transaction).where(
            or_(Transaction.buyer_id == user_id, Transaction.seller_id == user_id)
        )
        if status is not None:
            query = query.where(Transaction.status == status)
        result = await self._session.execute(query.order_by(Transaction.created_at.desc()))
        return list(result.scalars().all())

    async def compare_and_swap_status(
        self,
        transaction_id: uuid.UUID | str,
        expected_status: str,
        new_status: str,
    ) -> bool:
        """Write `new_status` only if the row is still in `expected_status`.

        Returns False (and writes nothing) when another writer got there first.
        """
        result = await self._session.execute(
            update(Transaction)
            .where(
                Transaction.id == as_uuid(transaction_id),
                Transaction.status == expected_status,
            )
            .values(status=new_status, updated_at=datetime.now(UTC))
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def record_settlement(
        self, transaction: Transaction, resolution_breakdown: dict
    ) -> Transaction:
        transaction.resolution_breakdown = resolution_breakdown
        await self._session.flush()
        return transaction

    async def record_delivery(
        self, transaction: Transaction, proof_url: str | None, notes: str | None
    ) -> Transaction:
        transaction.delivery_proof_url = proof_url
        transaction.delivery_notes = notes
        await self._session.flush()
        return transaction


class ContractRepository:
    """Data access for contracts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, contract: Contract) -> Contract:
        self._session.add(contract)
        await self._session.flush()
        return contract

    async def get_by_id(self, contract_id: uuid.UUID | str) -> Contract | None:
        result = await self._session.execute(
            select(Contract).where(Contract.id == as_uuid(contract_id))
        )
        return result.scalar_one_or_none()

    async def get_active_for_transaction(
        self, transaction_id: uuid.UUID | str
    ) -> Contract | None:
        """The live contract of a transaction (newest active one)."""
        result = await self._session.execute(
            select(Contract)
            .where(
                Contract.transaction_id == as_uuid(transaction_id),
                Contract.is_active.is_(True),
            )
            .order_by(Contract.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_party(self, user_id: str) -> list[Contract]:
        result = await self._session.execute(
            select(Contract)
            .where(or_(Contract.created_by == user_id, Contract.recipient_id == user_id))
            .order_by(Contract.created_at.desc())
        )
        return list(result.scalars().all())

    async def deactivate(self, contract: Contract) -> Contract:
        contract.is_active = False
        await self._session.flush()
        return contract

    async def update_status(
        self, contract: Contract, status: str, response_message: str | None = None
    ) -> Contract:
        contract.status = status
        contract.response_message = response_message
        contract.responded_at = datetime.now(UTC)
        await self._session.flush()
        return contract


class DisputeRepository:
    """Data access for disputes, their messages and their proposals."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, dispute: Dispute) -> Dispute:
        self._session.add(dispute)
        await self._session.flush()
        return dispute

    async def get_by_id(self, dispute_id: uuid.UUID | str) -> Dispute | None:
        result = await self._session.execute(
            select(Dispute).where(Dispute.id == as_uuid(dispute_id))
        )
        return result.scalar_one_or_none()

    async def get_open_for_transaction(
        self, transaction_id: uuid.UUID | str
    ) -> Dispute | None:
        """The most recent dispute on a transaction, whatever its status."""
        result = await self._session.execute(
            select(Dispute)
            .where(Dispute.transaction_id == as_uuid(transaction_id))
            .order_by(Dispute.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_transaction(self, transaction_id: uuid.UUID | str) -> list[Dispute]:
        result = await self._session.execute(
            select(Dispute)
            .where(Dispute.transaction_id == as_uuid(transaction_id))
            .order_by(Dispute.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_for_party(self, user_id: str, status: str | None = None) -> list[Dispute]:
        """Disputes on transactions where the user is buyer or seller."""
        query = (
            select(Dispute)
            .join(Transaction, Transaction.id == Dispute.transaction_id)
            .where(or_(Transaction.buyer_id == user_id, Transaction.seller_id == user_id))
        )
        if status is not None:
            query = query.where(Dispute.status == status)
        result = await self._session.execute(query.order_by(Dispute.created_at.desc()))
        return list(result.scalars().all())

    async def mark_resolved(self, dispute: Dispute, resolution_notes: str) -> Dispute:
        dispute.status = "resolved"
        dispute.resolution_notes = resolution_notes
        dispute.resolved_at = datetime.now(UTC)
        await self._session.flush()
        return dispute

    async def mark_escalated(self, dispute: Dispute) -> Dispute:
        dispute.status = "escalated"
        await self._session.flush()
        return dispute

    async def add_evidence(self, dispute: Dispute, locator: str) -> Dispute:
        # Reassign so the JSON column is flagged dirty.
        dispute.evidence_files = [*(dispute.evidence_files or []), locator]
        await self._session.flush()
        return dispute

    # --- Messages (append-only) ---

    async def add_message(self, message: DisputeMessage) -> DisputeMessage:
        self._session.add(message)
        await self._session.flush()
        return message

    async def list_messages(self, dispute_ids: list[uuid.UUID]) -> list[DisputeMessage]:
        """Messages of the given disputes in conversation order."""
        if not dispute_ids:
            return []
        result = await self._session.execute(
            select(DisputeMessage)
            .where(DisputeMessage.dispute_id.in_(dispute_ids))
            .order_by(DisputeMessage.created_at.asc())
        )
        return list(result.scalars().all())

    # --- Proposals ---

    async def add_proposal(self, proposal: DisputeProposal) -> DisputeProposal:
        self._session.add(proposal)
        await self._session.flush()
        return proposal

    async def get_proposal(self, proposal_id: uuid.UUID | str) -> DisputeProposal | None:
        result = await self._session.execute(
            select(DisputeProposal)
            .where(DisputeProposal.id == as_uuid(proposal_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_proposals(self, dispute_ids: list[uuid.UUID]) -> list[DisputeProposal]:
        if not dispute_ids:
            return []
        result = await self._session.execute(
            select(DisputeProposal)
            .where(DisputeProposal.dispute_id.in_(dispute_ids))
            .order_by(DisputeProposal.created_at.asc())
        )
        return list(result.scalars().all())

    async def respond_to_proposal(
        self,
        proposal_id: uuid.UUID | str,
        expected_status: str,
        status: str,
        responded_by: str,
    ) -> bool:
        """Answer a proposal only if it is still in `expected_status`.

        Returns False (and writes nothing) when another response landed first.
        """
        result = await self._session.execute(
            update(DisputeProposal)
            .where(
                DisputeProposal.id == as_uuid(proposal_id),
                DisputeProposal.status == expected_status,
            )
            .values(status=status, responded_by=responded_by, responded_at=datetime.now(UTC))
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def get_proposal_status(self, proposal_id: uuid.UUID | str) -> str | None:
        result = await self._session.execute(
            select(DisputeProposal.status).where(DisputeProposal.id == as_uuid(proposal_id))
        )
        return result.scalar_one_or_none()


class EscalationRepository:
    """Data access for escalations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, escalation: Escalation) -> Escalation:
        self._session.add(escalation)
        await self._session.flush()
        return escalation

    async def get_by_id(self, escalation_id: uuid.UUID | str) -> Escalation | None:
        result = await self._session.execute(
            select(Escalation).where(Escalation.id == as_uuid(escalation_id))
        )
        return result.scalar_one_or_none()

    async def list_all(self, status: str | None = None) -> list[Escalation]:
        """Every escalation (arbiter view)."""
        query = select(Escalation)
        if status is not None:
            query = query.where(Escalation.status == status)
        result = await self._session.execute(query.order_by(Escalation.created_at.desc()))
        return list(result.scalars().all())

    async def list_for_party(self, user_id: str) -> list[Escalation]:
        result = await self._session.execute(
            select(Escalation)
            .join(Transaction, Transaction.id == Escalation.transaction_id)
            .where(or_(Transaction.buyer_id == user_id, Transaction.seller_id == user_id))
            .order_by(Escalation.created_at.desc())
        )
        return list(result.scalars().all())

    async def update_handling(
        self,
        escalation: Escalation,
        status: str,
        assigned_to: str | None = None,
        resolution_notes: str | None = None,
    ) -> Escalation:
        escalation.status = status
        if assigned_to is not None:
            escalation.assigned_to = assigned_to
        if resolution_notes is not None:
            escalation.resolution_notes = resolution_notes
            escalation.resolved_at = datetime.now(UTC)
        await self._session.flush()
        return escalation


class NotificationRepository:
    """Data access for notifications. Rows are inserted, then only marked read."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def insert(self, row: dict) -> Notification:
        notification = Notification(
            user_id=row["user_id"],
            type=row["type"],
            title=row["title"],
            message=row["message"],
            contract_id=as_uuid(row.get("contract_id")),
            transaction_id=as_uuid(row.get("transaction_id")),
            sender_id=row.get("sender_id"),
            payload=row.get("payload"),
        )
        self._session.add(notification)
        await self._session.flush()
        return notification

    async def get_by_id(self, notification_id: uuid.UUID | str) -> Notification | None:
        result = await self._session.execute(
            select(Notification).where(Notification.id == as_uuid(notification_id))
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str, unread_only: bool = False) -> list[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.read.is_(False))
        result = await self._session.execute(query.order_by(Notification.created_at.desc()))
        return list(result.scalars().all())

    async def count_unread(self, user_id: str) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
        )
        return int(result.scalar_one())

    async def mark_read(self, notification: Notification) -> Notification:
        notification.read = True
        await self._session.flush()
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        result = await self._session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True, updated_at=datetime.now(UTC))
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount
