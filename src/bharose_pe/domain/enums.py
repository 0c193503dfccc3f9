"""Domain enumerations for Bharose Pe.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class TransactionStatus(enum.StrEnum):
    """Lifecycle states of an escrow transaction.

    State transitions are enforced by the TransactionStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    CREATED = "created"
    CONTRACT_ACCEPTED = "contract_accepted"
    PAYMENT_MADE = "payment_made"
    WORK_COMPLETED = "work_completed"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    ESCALATED = "escalated"
    CONTRACT_REJECTED = "contract_rejected"


class LifecycleEvent(enum.StrEnum):
    """Events accepted by the lifecycle engine.

    The values double as the event names on TransactionStateMachine.
    """

    # Contract
    CONTRACT_ACCEPTED = "contract_accepted"
    CONTRACT_REJECTED = "contract_rejected"

    # Payment and delivery
    PAYMENT_MADE = "payment_made"
    WORK_COMPLETED = "work_completed"
    DELIVERY_CONFIRMED = "delivery_confirmed"

    # Disputes
    DISPUTE_RAISED = "dispute_raised"
    DISPUTE_RESOLVED = "dispute_resolved"
    ESCALATION_REQUESTED = "escalation_requested"

    # Settlement proposals
    PROPOSAL_CREATED = "proposal_created"
    PROPOSAL_ACCEPTED = "proposal_accepted"
    PROPOSAL_REJECTED = "proposal_rejected"


class ContractStatus(enum.StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DisputeStatus(enum.StrEnum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


class ProposalStatus(enum.StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ProposalType(enum.StrEnum):
    """Settlement offers a party can make inside an active dispute."""

    RELEASE_FULL = "release_full"
    RELEASE_PARTIAL = "release_partial"
    REFUND_FULL = "refund_full"
    REFUND_PARTIAL = "refund_partial"

    @property
    def is_partial(self) -> bool:
        return self in (ProposalType.RELEASE_PARTIAL, ProposalType.REFUND_PARTIAL)


class EscalationStatus(enum.StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class MessageType(enum.StrEnum):
    TEXT = "text"
    FILE = "file"
    IMAGE = "image"


class NotificationType(enum.StrEnum):
    """Closed set of notification kinds.

    Each value has exactly one record variant in domain/notifications.py.
    """

    CONTRACT_RECEIVED = "contract_received"
    CONTRACT_ACCEPTED = "contract_accepted"
    CONTRACT_REJECTED = "contract_rejected"
    CONTRACT_UPDATED = "contract_updated"
    DISPUTE_RAISED = "dispute_raised"
    DISPUTE_RESOLVED = "dispute_resolved"
    PAYMENT_RECEIVED = "payment_received"
    PROPOSAL_CREATED = "proposal_created"
    PROPOSAL_ACCEPTED = "proposal_accepted"
    PROPOSAL_REJECTED = "proposal_rejected"


class PartyRole(enum.StrEnum):
    BUYER = "buyer"
    SELLER = "seller"
