"""Lifecycle State Machine Guards.

Uses python-statemachine to enforce legal state transitions at the domain level.
No matter what the API or a service does, an illegal transition
(e.g., created -> completed) will raise TransitionNotAllowed, which
fire_transition() converts into InvalidGuardError.

Each machine is instantiated at a row's current status, fired once, and
discarded. The resulting status is what gets written back.

Transaction transition table:
    created            -> contract_accepted   (contract_accepted)
    created            -> contract_rejected   (contract_rejected)
    contract_accepted  -> payment_made        (payment_made)
    payment_made       -> work_completed      (work_completed)
    payment_made       -> completed           (delivery_confirmed)
    work_completed     -> completed           (delivery_confirmed)
    contract_accepted  -> disputed            (dispute_raised)
    payment_made       -> disputed            (dispute_raised)
    work_completed     -> disputed            (dispute_raised)
    disputed           -> completed           (dispute_resolved)
    disputed           -> escalated           (escalation_requested)
    disputed           -> disputed            (proposal_created, proposal_rejected)
    disputed           -> completed           (proposal_accepted)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from bharose_pe.domain.exceptions import InvalidGuardError


class _GuardedMachine:
    """Shared helpers for machines that are started at a persisted status."""

    #: Event names declared on the concrete machine, in declaration order.
    event_names: tuple[str, ...] = ()

    def __init__(self, current_status: str) -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The persisted status value (e.g., "payment_made").
                           Must match one of the State values exactly.
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string."""
        return str(self.current_state.value)

    @classmethod
    def can_fire(cls, current_status: str, event_name: str) -> bool:
        """Return True if `event_name` is accepted from `current_status`."""
        sm = cls(current_status)
        try:
            sm.send(event_name)
        except TransitionNotAllowed:
            return False
        return True

    def get_allowed_events(self) -> list[str]:
        """Return the event names that can fire from the current state."""
        return [name for name in self.event_names if self.can_fire(self.status, name)]

    @classmethod
    def states_accepting(cls, event_name: str) -> list[str]:
        """Return every status value from which `event_name` can fire."""
        return [
            s.value for s in cls.states if cls.can_fire(s.value, event_name)
        ]


class TransactionStateMachine(_GuardedMachine, StateMachine):
    """State machine that guards escrow transaction lifecycle transitions.

    Usage:
        sm = TransactionStateMachine("contract_accepted")
        sm.payment_made()   # transitions to payment_made
        sm.status           # "payment_made"
    """

    # --- States ---
    CREATED = State("Created", value="created", initial=True)
    CONTRACT_ACCEPTED = State("Contract accepted", value="contract_accepted")
    PAYMENT_MADE = State("Payment made", value="payment_made")
    WORK_COMPLETED = State("Work completed", value="work_completed")
    DISPUTED = State("Disputed", value="disputed")
    COMPLETED = State("Completed", value="completed", final=True)
    CONTRACT_REJECTED = State("Contract rejected", value="contract_rejected", final=True)
    ESCALATED = State("Escalated", value="escalated", final=True)

    # --- Events / Transitions ---

    # Contract response
    contract_accepted = CREATED.to(CONTRACT_ACCEPTED)
    contract_rejected = CREATED.to(CONTRACT_REJECTED)

    # Payment and delivery
    payment_made = CONTRACT_ACCEPTED.to(PAYMENT_MADE)
    work_completed = PAYMENT_MADE.to(WORK_COMPLETED)
    delivery_confirmed = PAYMENT_MADE.to(COMPLETED) | WORK_COMPLETED.to(COMPLETED)

    # Disputes
    dispute_raised = (
        CONTRACT_ACCEPTED.to(DISPUTED)
        | PAYMENT_MADE.to(DISPUTED)
        | WORK_COMPLETED.to(DISPUTED)
    )
    dispute_resolved = DISPUTED.to(COMPLETED)
    escalation_requested = DISPUTED.to(ESCALATED)

    # Settlement proposals
    proposal_created = DISPUTED.to.itself()
    proposal_rejected = DISPUTED.to.itself()
    proposal_accepted = DISPUTED.to(COMPLETED)

    event_names = (
        "contract_accepted",
        "contract_rejected",
        "payment_made",
        "work_completed",
        "delivery_confirmed",
        "dispute_raised",
        "dispute_resolved",
        "escalation_requested",
        "proposal_created",
        "proposal_rejected",
        "proposal_accepted",
    )


class DisputeStateMachine(_GuardedMachine, StateMachine):
    """active -> resolved | escalated. Neither exit state has outbound transitions."""

    ACTIVE = State("Active", value="active", initial=True)
    RESOLVED = State("Resolved", value="resolved", final=True)
    ESCALATED = State("Escalated", value="escalated", final=True)

    resolve = ACTIVE.to(RESOLVED)
    escalate = ACTIVE.to(ESCALATED)

    event_names = ("resolve", "escalate")


class ProposalStateMachine(_GuardedMachine, StateMachine):
    """pending -> accepted | rejected."""

    PENDING = State("Pending", value="pending", initial=True)
    ACCEPTED = State("Accepted", value="accepted", final=True)
    REJECTED = State("Rejected", value="rejected", final=True)

    accept = PENDING.to(ACCEPTED)
    reject = PENDING.to(REJECTED)

    event_names = ("accept", "reject")


class EscalationStateMachine(_GuardedMachine, StateMachine):
    """Arbiter-driven escalation handling.

    pending -> in_progress (assign), in_progress -> in_progress (reassign),
    pending | in_progress -> resolved (resolve).
    """

    PENDING = State("Pending", value="pending", initial=True)
    IN_PROGRESS = State("In progress", value="in_progress")
    RESOLVED = State("Resolved", value="resolved", final=True)

    assign = PENDING.to(IN_PROGRESS) | IN_PROGRESS.to.itself()
    resolve = PENDING.to(RESOLVED) | IN_PROGRESS.to(RESOLVED)

    event_names = ("assign", "resolve")


def fire_transition(
    machine_cls: type[_GuardedMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine, fires the named event, and returns
    the resulting status string.

    Raises:
        InvalidGuardError: If the event is unknown or not allowed from
            `current_status`. The error carries the states that would accept it.
    """
    if event_name not in machine_cls.event_names:
        raise InvalidGuardError(
            current_status,
            event_name,
            reason=f"Unknown event '{event_name}' for {machine_cls.__name__}",
        )

    sm = machine_cls(current_status)
    try:
        sm.send(event_name)
    except TransitionNotAllowed as err:
        raise InvalidGuardError(
            current_status,
            event_name,
            expected_states=machine_cls.states_accepting(event_name),
        ) from err
    return sm.status


def validate_transition(current_status: str, event_name: str) -> str:
    """Convenience wrapper for the transaction machine."""
    return fire_transition(TransactionStateMachine, current_status, event_name)
