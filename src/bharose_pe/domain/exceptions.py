"""Domain exceptions for Bharose Pe.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
"""

from __future__ import annotations


class BharoseError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "BHAROSE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Lookup Errors ---


class NotFoundError(BharoseError):
    """Raised when a referenced row does not exist (or is not visible to the caller)."""

    entity = "Resource"

    def __init__(self, entity_id: str) -> None:
        super().__init__(
            message=f"{self.entity} not found: {entity_id}",
            code="NOT_FOUND",
        )
        self.entity_id = entity_id


class TransactionNotFoundError(NotFoundError):
    entity = "Transaction"


class ContractNotFoundError(NotFoundError):
    entity = "Contract"


class DisputeNotFoundError(NotFoundError):
    entity = "Dispute"


class ProposalNotFoundError(NotFoundError):
    entity = "Proposal"


class EscalationNotFoundError(NotFoundError):
    entity = "Escalation"


class NotificationNotFoundError(NotFoundError):
    entity = "Notification"


# --- Lifecycle Errors ---


class UnauthorizedActorError(BharoseError):
    """Raised when the actor is not a recognized party for the event."""

    def __init__(self, actor_id: str, action: str) -> None:
        super().__init__(
            message=f"User {actor_id} is not allowed to {action}",
            code="UNAUTHORIZED_ACTOR",
        )
        self.actor_id = actor_id
        self.action = action


class InvalidGuardError(BharoseError):
    """Raised when an event is not valid from the current state or its guard fails.

    Example: payment_made fired while the transaction is still `created`,
    or a payment amount that does not match the transaction amount.
    """

    def __init__(
        self,
        current_state: str,
        event: str,
        reason: str | None = None,
        expected_states: list[str] | None = None,
    ) -> None:
        self.current_state = current_state
        self.event = event
        self.expected_states = expected_states or []
        if reason is None:
            expected = ", ".join(self.expected_states) or "none"
            reason = (
                f"Event '{event}' is not allowed from state '{current_state}' "
                f"(allowed from: {expected})"
            )
        super().__init__(message=reason, code="INVALID_GUARD")


class StaleStateError(BharoseError):
    """Raised when the committed status no longer matches the status the caller read."""

    def __init__(
        self,
        entity_id: str,
        expected: str,
        actual: str | None,
        entity: str = "Transaction",
    ) -> None:
        super().__init__(
            message=(
                f"{entity} {entity_id} changed concurrently: "
                f"expected '{expected}', found '{actual}'. Refresh and try again."
            ),
            code="STALE_STATE",
        )
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual


class SideEffectFailure(BharoseError):
    """A side effect failed after the state transition was written.

    Never raised to callers: collected on the lifecycle result and logged.
    """

    def __init__(self, effect: str, recipient_id: str, reason: str) -> None:
        super().__init__(
            message=f"Side effect '{effect}' for {recipient_id} failed: {reason}",
            code="SIDE_EFFECT_FAILURE",
        )
        self.effect = effect
        self.recipient_id = recipient_id
        self.reason = reason


# --- Validation Errors ---


class ValidationError(BharoseError):
    """Raised when input is well-formed but violates a business rule."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")


# --- Storage Errors ---


class BlobStoreError(BharoseError):
    """Raised when an evidence upload cannot be stored."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message=message, code="BLOB_STORE_ERROR")
        self.path = path
