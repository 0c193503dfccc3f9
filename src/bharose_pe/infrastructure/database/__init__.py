"""Database infrastructure: engine, ORM models, and repositories."""

from bharose_pe.infrastructure.database.engine import (
    close_db,
    init_db,
)
from bharose_pe.infrastructure.database.orm_models import (
    Base,
    Contract,
    Dispute,
    DisputeMessage,
    DisputeProposal,
    Escalation,
    Notification,
    Profile,
    Transaction,
)
from bharose_pe.infrastructure.database.repositories import (
    ContractRepository,
    DisputeRepository,
    EscalationRepository,
    NotificationRepository,
    ProfileRepository,
    TransactionRepository,
)

__all__ = [
    "Base",
    "Contract",
    "Dispute",
    "DisputeMessage",
    "DisputeProposal",
    "Escalation",
    "Notification",
    "Profile",
    "Transaction",
    "ContractRepository",
    "DisputeRepository",
    "EscalationRepository",
    "NotificationRepository",
    "ProfileRepository",
    "TransactionRepository",
    "init_db",
    "close_db",
]
