"""Domain layer: pure business logic with zero framework dependencies."""

from bharose_pe.domain.enums import (
    DisputeStatus,
    EscalationStatus,
    LifecycleEvent,
    NotificationType,
    ProposalType,
    TransactionStatus,
)
from bharose_pe.domain.exceptions import (
    BharoseError,
    InvalidGuardError,
    NotFoundError,
    StaleStateError,
    UnauthorizedActorError,
)
from bharose_pe.domain.lifecycle import Transition, apply_event
from bharose_pe.domain.models import ActorContext, TransactionView
from bharose_pe.domain.state_machine import (
    TransactionStateMachine,
    validate_transition,
)

__all__ = [
    "DisputeStatus",
    "EscalationStatus",
    "LifecycleEvent",
    "NotificationType",
    "ProposalType",
    "TransactionStatus",
    "BharoseError",
    "InvalidGuardError",
    "NotFoundError",
    "StaleStateError",
    "UnauthorizedActorError",
    "Transition",
    "apply_event",
    "ActorContext",
    "TransactionView",
    "TransactionStateMachine",
    "validate_transition",
]
