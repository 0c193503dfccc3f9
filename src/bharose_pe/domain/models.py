"""Read-only views and event payloads consumed by the lifecycle engine.

The engine never touches ORM rows. Services copy the committed rows they read
into these frozen dataclasses, so a transition is a pure function of what
was read immediately before the write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date  # noqa: TC003

from bharose_pe.domain.enums import (
    ContractStatus,
    DisputeStatus,
    PartyRole,
    ProposalStatus,
    ProposalType,
)

#: Roles that may resolve disputes and handle escalations.
ARBITER_ROLES = frozenset({"arbiter", "admin"})


@dataclass(frozen=True)
class ActorContext:
    """The authenticated caller, as supplied by the auth provider.

    Passed explicitly to every service call; there is no ambient session.
    """

    user_id: str
    roles: frozenset[str] = frozenset()

    @property
    def is_arbiter(self) -> bool:
        return bool(self.roles & ARBITER_ROLES)


@dataclass(frozen=True)
class TransactionView:
    id: str
    buyer_id: str
    seller_id: str
    amount: int
    status: str
    title: str = ""
    buyer_name: str | None = None
    seller_name: str | None = None

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.buyer_id, self.seller_id)

    def role_of(self, user_id: str) -> PartyRole | None:
        if user_id == self.buyer_id:
            return PartyRole.BUYER
        if user_id == self.seller_id:
            return PartyRole.SELLER
        return None

    def display_name(self, user_id: str) -> str:
        """Profile name of a party, falling back to its role."""
        if user_id == self.buyer_id:
            return self.buyer_name or "Buyer"
        if user_id == self.seller_id:
            return self.seller_name or "Seller"
        return "Bharose Pe"


@dataclass(frozen=True)
class ContractView:
    id: str
    transaction_id: str
    created_by: str
    recipient_id: str
    status: ContractStatus
    is_active: bool = True


@dataclass(frozen=True)
class DisputeView:
    id: str
    transaction_id: str
    disputing_party_id: str
    status: DisputeStatus
    dispute_reason: str = ""


@dataclass(frozen=True)
class ProposalView:
    id: str
    dispute_id: str
    proposed_by: str
    proposal_type: ProposalType
    status: ProposalStatus
    amount: int | None = None


@dataclass(frozen=True)
class DisputeContext:
    """Everything captured into an escalation snapshot.

    Rows are plain dicts as read from the store, in canonical order
    (disputes newest first, messages and proposals oldest first).
    """

    disputes: list[dict] = field(default_factory=list)
    messages: list[dict] = field(default_factory=list)
    proposals: list[dict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Event payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContractResponsePayload:
    """ContractAccepted / ContractRejected."""

    response_message: str | None = None


@dataclass(frozen=True)
class PaymentPayload:
    """PaymentMade. `amount` must equal the transaction amount."""

    amount: int
    payment_reference: str | None = None


@dataclass(frozen=True)
class DeliveryPayload:
    """WorkCompleted / DeliveryConfirmed."""

    proof_url: str | None = None
    notes: str | None = None
    delivered_on: date | None = None


@dataclass(frozen=True)
class DisputePayload:
    """DisputeRaised."""

    reason: str
    description: str = ""
    evidence_files: tuple[str, ...] = ()
    contract_id: str | None = None


@dataclass(frozen=True)
class ResolutionPayload:
    """DisputeResolved. Apportionment decided by an arbiter."""

    buyer_refund: int
    seller_release: int
    resolution_notes: str


@dataclass(frozen=True)
class EscalationPayload:
    """EscalationRequested."""

    reason: str
    notes: str | None = None
    evidence_files: tuple[str, ...] = ()
    context: DisputeContext = field(default_factory=DisputeContext)


@dataclass(frozen=True)
class ProposalPayload:
    """ProposalCreated."""

    proposal_type: ProposalType
    amount: int | None = None
    description: str | None = None


@dataclass(frozen=True)
class ProposalResponsePayload:
    """ProposalAccepted / ProposalRejected."""

    proposal_id: str
