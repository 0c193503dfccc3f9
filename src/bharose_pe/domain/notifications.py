"""Notification records and the side-effect mapper.

Notifications are a closed tagged union keyed by `type`: one frozen dataclass
per NotificationType, each carrying only the fields relevant to it. The
dispatcher persists them with `to_row()`; variant-specific fields travel in
the `payload` column.

Recipients are always resolved from the transaction: the counterparty of the
actor, never the actor itself.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import ClassVar

from bharose_pe.domain.enums import NotificationType, PartyRole, ProposalType
from bharose_pe.domain.exceptions import UnauthorizedActorError
from bharose_pe.domain.models import TransactionView  # noqa: TC001
from bharose_pe.domain.settlement import Settlement  # noqa: TC001

_BASE_FIELDS = ("user_id", "title", "message", "transaction_id", "sender_id")


@dataclass(frozen=True)
class NotificationRecord:
    """Common envelope. Do not instantiate directly; use a variant."""

    type: ClassVar[NotificationType]

    user_id: str
    title: str
    message: str
    transaction_id: str | None = None
    sender_id: str | None = None

    @property
    def payload(self) -> dict:
        """Variant-specific fields (everything beyond the common envelope)."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in _BASE_FIELDS and f.name != "contract_id"
        }

    def to_row(self) -> dict:
        """Column values for the notifications table."""
        return {
            "user_id": self.user_id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "transaction_id": self.transaction_id,
            "contract_id": getattr(self, "contract_id", None),
            "sender_id": self.sender_id,
            "payload": self.payload or None,
        }


@dataclass(frozen=True)
class ContractReceived(NotificationRecord):
    type: ClassVar[NotificationType] = NotificationType.CONTRACT_RECEIVED
    contract_id: str = ""


@dataclass(frozen=True)
class ContractAccepted(NotificationRecord):
    type: ClassVar[NotificationType] = NotificationType.CONTRACT_ACCEPTED
    contract_id: str = ""


@dataclass(frozen=True)
class ContractRejected(NotificationRecord):
    type: ClassVar[NotificationType] = NotificationType.CONTRACT_REJECTED
    contract_id: str = ""
    response_message: str | None = None


@dataclass(frozen=True)
class ContractUpdated(NotificationRecord):
    type: ClassVar[NotificationType] = NotificationType.CONTRACT_UPDATED
    contract_id: str = ""
    superseded_contract_id: str | None = None


@dataclass(frozen=True)
class DisputeRaised(NotificationRecord):
    type: ClassVar[NotificationType] = NotificationType.DISPUTE_RAISED
    dispute_reason: str = ""


@dataclass(frozen=True)
class DisputeResolved(NotificationRecord):
    type: ClassVar[NotificationType] = NotificationType.DISPUTE_RESOLVED
    buyer_refund: int = 0
    seller_release: int = 0


@dataclass(frozen=True)
class PaymentReceived(NotificationRecord):
    type: ClassVar[NotificationType] = NotificationType.PAYMENT_RECEIVED
    amount: int = 0


@dataclass(frozen=True)
class ProposalCreated(NotificationRecord):
    type: ClassVar[NotificationType] = NotificationType.PROPOSAL_CREATED
    proposal_type: str = ""
    amount: int | None = None


@dataclass(frozen=True)
class ProposalAccepted(NotificationRecord):
    type: ClassVar[NotificationType] = NotificationType.PROPOSAL_ACCEPTED
    proposal_id: str = ""
    buyer_refund: int = 0
    seller_release: int = 0


@dataclass(frozen=True)
class ProposalRejected(NotificationRecord):
    type: ClassVar[NotificationType] = NotificationType.PROPOSAL_REJECTED
    proposal_id: str = ""


#: One variant per notification type.
NOTIFICATION_VARIANTS: dict[NotificationType, type[NotificationRecord]] = {
    cls.type: cls
    for cls in (
        ContractReceived,
        ContractAccepted,
        ContractRejected,
        ContractUpdated,
        DisputeRaised,
        DisputeResolved,
        PaymentReceived,
        ProposalCreated,
        ProposalAccepted,
        ProposalRejected,
    )
}


# ---------------------------------------------------------------------------
# Recipient resolution
# ---------------------------------------------------------------------------


def resolve_counterparty(transaction: TransactionView, actor_id: str) -> str:
    """Return the other party of the transaction relative to `actor_id`.

    Raises:
        UnauthorizedActorError: If the actor is neither buyer nor seller.
    """
    if actor_id == transaction.buyer_id:
        return transaction.seller_id
    if actor_id == transaction.seller_id:
        return transaction.buyer_id
    raise UnauthorizedActorError(actor_id, f"act on transaction {transaction.id}")


def format_rupees(amount: int) -> str:
    return f"₹{amount:,}"


_PROPOSAL_LABELS = {
    ProposalType.RELEASE_FULL: "Release Full Amount",
    ProposalType.RELEASE_PARTIAL: "Release Partial Amount",
    ProposalType.REFUND_FULL: "Refund Full Amount",
    ProposalType.REFUND_PARTIAL: "Refund Partial Amount",
}


# ---------------------------------------------------------------------------
# Builders (one per lifecycle side effect)
# ---------------------------------------------------------------------------


def contract_sent(
    transaction: TransactionView,
    actor_id: str,
    contract_id: str,
    superseded_contract_id: str | None = None,
) -> NotificationRecord:
    recipient = resolve_counterparty(transaction, actor_id)
    sender = transaction.display_name(actor_id)
    if superseded_contract_id:
        return ContractUpdated(
            user_id=recipient,
            title="Contract Updated",
            message=f'{sender} sent a revised contract for "{transaction.title}"',
            transaction_id=transaction.id,
            sender_id=actor_id,
            contract_id=contract_id,
            superseded_contract_id=superseded_contract_id,
        )
    return ContractReceived(
        user_id=recipient,
        title="New Contract Received",
        message=f'{sender} sent you a contract for "{transaction.title}"',
        transaction_id=transaction.id,
        sender_id=actor_id,
        contract_id=contract_id,
    )


def contract_response(
    transaction: TransactionView,
    actor_id: str,
    contract_id: str,
    accepted: bool,
    response_message: str | None = None,
) -> NotificationRecord:
    recipient = resolve_counterparty(transaction, actor_id)
    verb = "accepted" if accepted else "rejected"
    message = (
        f'{transaction.display_name(actor_id)} {verb} your contract for '
        f'"{transaction.title}"'
    )
    if response_message:
        message = f"{message}: {response_message}"
    if accepted:
        return ContractAccepted(
            user_id=recipient,
            title="Contract Accepted",
            message=message,
            transaction_id=transaction.id,
            sender_id=actor_id,
            contract_id=contract_id,
        )
    return ContractRejected(
        user_id=recipient,
        title="Contract Rejected",
        message=message,
        transaction_id=transaction.id,
        sender_id=actor_id,
        contract_id=contract_id,
        response_message=response_message,
    )


def payment_received(transaction: TransactionView, actor_id: str) -> PaymentReceived:
    return PaymentReceived(
        user_id=resolve_counterparty(transaction, actor_id),
        title="Payment Received!",
        message=(
            f"{transaction.display_name(actor_id)} has made a payment of "
            f'{format_rupees(transaction.amount)} for "{transaction.title}". '
            "You can now proceed with delivery."
        ),
        transaction_id=transaction.id,
        sender_id=actor_id,
        amount=transaction.amount,
    )


def funds_released(transaction: TransactionView, actor_id: str) -> PaymentReceived:
    return PaymentReceived(
        user_id=resolve_counterparty(transaction, actor_id),
        title="Funds Released",
        message=(
            f"{transaction.display_name(actor_id)} confirmed delivery of "
            f'"{transaction.title}". {format_rupees(transaction.amount)} '
            "has been released to you."
        ),
        transaction_id=transaction.id,
        sender_id=actor_id,
        amount=transaction.amount,
    )


def dispute_raised(
    transaction: TransactionView, actor_id: str, reason: str
) -> DisputeRaised:
    return DisputeRaised(
        user_id=resolve_counterparty(transaction, actor_id),
        title="Dispute Raised",
        message=(
            f'{transaction.display_name(actor_id)} has raised a dispute for '
            f'"{transaction.title}". Reason: {reason}. '
            "Please respond promptly to resolve this matter."
        ),
        transaction_id=transaction.id,
        sender_id=actor_id,
        dispute_reason=reason,
    )


def dispute_resolved(
    transaction: TransactionView, actor_id: str, settlement: Settlement
) -> list[DisputeResolved]:
    """Apportionment notices for both parties after an arbiter's decision.

    The arbiter has no counterparty, so each notice is addressed by role.
    """
    notices = []
    for party_id, role in (
        (transaction.buyer_id, PartyRole.BUYER),
        (transaction.seller_id, PartyRole.SELLER),
    ):
        share = (
            settlement.buyer_refund if role is PartyRole.BUYER
            else settlement.seller_release
        )
        verb = "refunded to you" if role is PartyRole.BUYER else "released to you"
        notices.append(
            DisputeResolved(
                user_id=party_id,
                title="Dispute Resolved",
                message=(
                    f'The dispute on "{transaction.title}" has been resolved. '
                    f"{format_rupees(share)} of {format_rupees(settlement.total_amount)} "
                    f"will be {verb}."
                ),
                transaction_id=transaction.id,
                sender_id=actor_id,
                buyer_refund=settlement.buyer_refund,
                seller_release=settlement.seller_release,
            )
        )
    return notices


def proposal_created(
    transaction: TransactionView,
    actor_id: str,
    proposal_type: ProposalType,
    amount: int | None,
) -> ProposalCreated:
    detail = _PROPOSAL_LABELS[proposal_type]
    if amount:
        detail = f"{detail} ({format_rupees(amount)})"
    return ProposalCreated(
        user_id=resolve_counterparty(transaction, actor_id),
        title="New Resolution Proposal",
        message=f"{transaction.display_name(actor_id)} proposed: {detail}. Review and respond.",
        transaction_id=transaction.id,
        sender_id=actor_id,
        proposal_type=proposal_type.value,
        amount=amount,
    )


def proposal_rejected(
    transaction: TransactionView, actor_id: str, proposal_id: str
) -> ProposalRejected:
    return ProposalRejected(
        user_id=resolve_counterparty(transaction, actor_id),
        title="Proposal Rejected",
        message=(
            f"{transaction.display_name(actor_id)} rejected the resolution proposal "
            f'for "{transaction.title}".'
        ),
        transaction_id=transaction.id,
        sender_id=actor_id,
        proposal_id=proposal_id,
    )


def proposal_accepted(
    transaction: TransactionView,
    actor_id: str,
    proposal_id: str,
    settlement: Settlement,
) -> ProposalAccepted:
    return ProposalAccepted(
        user_id=resolve_counterparty(transaction, actor_id),
        title="Proposal Accepted",
        message=(
            f"{transaction.display_name(actor_id)} accepted the resolution proposal "
            f'for "{transaction.title}". Buyer refund: '
            f"{format_rupees(settlement.buyer_refund)}, seller release: "
            f"{format_rupees(settlement.seller_release)}."
        ),
        transaction_id=transaction.id,
        sender_id=actor_id,
        proposal_id=proposal_id,
        buyer_refund=settlement.buyer_refund,
        seller_release=settlement.seller_release,
    )
