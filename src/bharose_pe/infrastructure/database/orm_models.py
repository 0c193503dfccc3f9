"""SQLAlchemy 2.0 ORM models for Bharose Pe.

Eight tables:
    1. profiles          : Display names for user ids issued by the auth provider.
    2. transactions      : The escrow deal between a buyer and a seller (root aggregate).
    3. contracts         : Proposed agreements tied to a transaction.
    4. disputes          : Disputes opened against a transaction.
    5. dispute_messages  : Append-only chat inside a dispute.
    6. dispute_proposals : Settlement offers inside a dispute.
    7. escalations       : Disputes handed to an arbiter, with a frozen context snapshot.
    8. notifications     : Addressed, typed, read/unread event records.

Design decisions:
    - UUIDs as primary keys; user ids are opaque strings from the auth provider.
    - Integer amounts (rupees); settlement arithmetic never rounds.
    - JSON columns (JSONB on PostgreSQL) for evidence lists and snapshots.
    - CHECK constraints on every status column to reject unknown enum values.
    - A partial unique index allows at most one active dispute per transaction.
    - Rows are never deleted at the application level.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from bharose_pe.domain.enums import (
    ContractStatus,
    DisputeStatus,
    EscalationStatus,
    MessageType,
    NotificationType,
    ProposalStatus,
    ProposalType,
    TransactionStatus,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _in_check(column: str, values: type) -> str:
    quoted = ", ".join(f"'{v.value}'" for v in values)
    return f"{column} IN ({quoted})"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _utcnow()


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


# ---------------------------------------------------------------------------
# 1. profiles
# ---------------------------------------------------------------------------
class Profile(TimestampMixin, Base):
    """Public profile of an authenticated user."""

    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def __repr__(self) -> str:
        return f"<Profile user_id={self.user_id} name={self.full_name!r}>"


# ---------------------------------------------------------------------------
# 2. transactions
# ---------------------------------------------------------------------------
class Transaction(TimestampMixin, Base):
    """An escrow deal between a buyer and a seller."""

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Parties (immutable after creation) ---
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # --- Deal ---
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Escrowed amount in rupees",
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # --- Status (guarded by TransactionStateMachine, written by compare-and-swap) ---
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=TransactionStatus.CREATED.value,
    )

    # --- Delivery & settlement records ---
    delivery_proof_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_breakdown: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
        comment="buyer_refund / seller_release split recorded when funds are released",
    )

    # --- Relationships ---
    contracts: Mapped[list[Contract]] = relationship(
        "Contract",
        back_populates="transaction",
        order_by="Contract.created_at.desc()",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(_in_check("status", TransactionStatus), name="ck_transaction_valid_status"),
        CheckConstraint("amount > 0", name="ck_transaction_positive_amount"),
        CheckConstraint("buyer_id <> seller_id", name="ck_transaction_distinct_parties"),
        Index("idx_transaction_buyer", "buyer_id"),
        Index("idx_transaction_seller", "seller_id"),
        Index("idx_transaction_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} status={self.status} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 3. contracts
# ---------------------------------------------------------------------------
class Contract(TimestampMixin, Base):
    """An agreement sent by one party and answered by the other."""

    __tablename__ = "contracts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("transactions.id"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ContractStatus.PENDING.value
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="False once superseded by a newer contract for the same transaction",
    )
    response_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    transaction: Mapped[Transaction] = relationship("Transaction", back_populates="contracts")

    __table_args__ = (
        CheckConstraint(_in_check("status", ContractStatus), name="ck_contract_valid_status"),
        CheckConstraint("created_by <> recipient_id", name="ck_contract_distinct_parties"),
        Index("idx_contract_transaction", "transaction_id"),
        Index("idx_contract_recipient", "recipient_id"),
    )

    def __repr__(self) -> str:
        return f"<Contract id={self.id} status={self.status} active={self.is_active}>"


# ---------------------------------------------------------------------------
# 4. disputes
# ---------------------------------------------------------------------------
class Dispute(TimestampMixin, Base):
    """A dispute opened by one party against a transaction."""

    __tablename__ = "disputes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("transactions.id"),
        nullable=False,
    )
    contract_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("contracts.id"),
        nullable=True,
    )
    disputing_party_id: Mapped[str] = mapped_column(String(64), nullable=False)
    dispute_reason: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    evidence_files: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DisputeStatus.ACTIVE.value
    )
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(_in_check("status", DisputeStatus), name="ck_dispute_valid_status"),
        Index("idx_dispute_transaction", "transaction_id"),
        Index(
            "uq_dispute_one_active_per_transaction",
            "transaction_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    def to_snapshot(self) -> dict:
        return {
            "id": str(self.id),
            "transaction_id": str(self.transaction_id),
            "contract_id": str(self.contract_id) if self.contract_id else None,
            "disputing_party_id": self.disputing_party_id,
            "dispute_reason": self.dispute_reason,
            "description": self.description,
            "evidence_files": list(self.evidence_files or []),
            "status": self.status,
            "resolution_notes": self.resolution_notes,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
        }

    def __repr__(self) -> str:
        return f"<Dispute id={self.id} transaction={self.transaction_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 5. dispute_messages (Append-Only)
# ---------------------------------------------------------------------------
class DisputeMessage(Base):
    """A chat message scoped to a dispute. Append-only."""

    __tablename__ = "dispute_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    dispute_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("disputes.id"),
        nullable=False,
    )
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(
        String(8), nullable=False, default=MessageType.TEXT.value
    )
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint(_in_check("message_type", MessageType), name="ck_message_valid_type"),
        Index("idx_message_dispute_created", "dispute_id", "created_at"),
    )

    def to_snapshot(self) -> dict:
        return {
            "id": str(self.id),
            "dispute_id": str(self.dispute_id),
            "sender_id": self.sender_id,
            "message": self.message,
            "message_type": self.message_type,
            "file_url": self.file_url,
            "file_name": self.file_name,
            "created_at": self.created_at,
        }


# ---------------------------------------------------------------------------
# 6. dispute_proposals
# ---------------------------------------------------------------------------
class DisputeProposal(TimestampMixin, Base):
    """A structured settlement offer within a dispute."""

    __tablename__ = "dispute_proposals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    dispute_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("disputes.id"),
        nullable=False,
    )
    proposed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    proposal_type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ProposalStatus.PENDING.value
    )
    responded_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(_in_check("status", ProposalStatus), name="ck_proposal_valid_status"),
        CheckConstraint(_in_check("proposal_type", ProposalType), name="ck_proposal_valid_type"),
        CheckConstraint("amount IS NULL OR amount > 0", name="ck_proposal_positive_amount"),
        Index("idx_proposal_dispute", "dispute_id"),
    )

    def to_snapshot(self) -> dict:
        return {
            "id": str(self.id),
            "dispute_id": str(self.dispute_id),
            "proposed_by": self.proposed_by,
            "proposal_type": self.proposal_type,
            "amount": self.amount,
            "description": self.description,
            "status": self.status,
            "responded_by": self.responded_by,
            "created_at": self.created_at,
        }


# ---------------------------------------------------------------------------
# 7. escalations
# ---------------------------------------------------------------------------
class Escalation(TimestampMixin, Base):
    """A dispute handed over to an arbiter.

    `dispute_data` is a point-in-time copy taken when the escalation is
    created. It is never updated afterwards.
    """

    __tablename__ = "escalations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("transactions.id"),
        nullable=False,
    )
    escalated_by: Mapped[str] = mapped_column(String(64), nullable=False)
    escalation_reason: Mapped[str] = mapped_column(String(500), nullable=False)
    escalation_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    evidence_files: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    dispute_data: Mapped[dict] = mapped_column(JSONType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=EscalationStatus.PENDING.value
    )
    assigned_to: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(_in_check("status", EscalationStatus), name="ck_escalation_valid_status"),
        Index("idx_escalation_transaction", "transaction_id"),
        Index("idx_escalation_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Escalation id={self.id} transaction={self.transaction_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 8. notifications
# ---------------------------------------------------------------------------
class Notification(TimestampMixin, Base):
    """An addressed notification. Only `read` is ever updated."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    contract_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    transaction_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    sender_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payload: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
        comment="Variant-specific fields of the notification type",
    )
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(_in_check("type", NotificationType), name="ck_notification_valid_type"),
        Index("idx_notification_user_read", "user_id", "read"),
        Index("idx_notification_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} type={self.type} read={self.read}>"


# ---------------------------------------------------------------------------
# Register the auto-update listener for updated_at
# ---------------------------------------------------------------------------
for _model in (Profile, Transaction, Contract, Dispute, DisputeProposal, Escalation, Notification):
    event.listen(_model, "before_update", _set_updated_at)
