"""Settlement apportionment.

Every resolved dispute splits the escrowed amount between a buyer refund and
a seller release. All arithmetic is on integers (rupees), so
buyer_refund + seller_release == total_amount holds exactly.

There is no ledger: a Settlement is a record of the decision, stored on the
transaction as `resolution_breakdown`.
"""

from __future__ import annotations

from dataclasses import dataclass

from bharose_pe.domain.enums import ProposalType
from bharose_pe.domain.exceptions import InvalidGuardError


@dataclass(frozen=True)
class Settlement:
    buyer_refund: int
    seller_release: int
    resolution_type: str
    total_amount: int

    def __post_init__(self) -> None:
        if self.buyer_refund < 0 or self.seller_release < 0:
            raise ValueError("Settlement shares must be non-negative")
        if self.buyer_refund + self.seller_release != self.total_amount:
            raise ValueError(
                f"Settlement does not conserve the escrow amount: "
                f"{self.buyer_refund} + {self.seller_release} != {self.total_amount}"
            )

    def to_dict(self) -> dict:
        """Serialize for storage in the resolution_breakdown JSON column."""
        return {
            "buyer_refund": self.buyer_refund,
            "seller_release": self.seller_release,
            "resolution_type": self.resolution_type,
            "total_amount": self.total_amount,
        }


def compute_settlement(
    proposal_type: ProposalType | str,
    total_amount: int,
    amount: int | None = None,
    *,
    current_state: str = "disputed",
    event: str = "proposal_accepted",
) -> Settlement:
    """Compute the apportionment a proposal implies.

    Partial proposals need 0 < amount < total_amount; full proposals ignore
    `amount`.

    Raises:
        InvalidGuardError: If the proposal amount is missing or out of range.
    """
    proposal_type = ProposalType(proposal_type)

    if proposal_type.is_partial:
        if amount is None:
            raise InvalidGuardError(
                current_state, event,
                reason=f"A {proposal_type.value} proposal needs an amount",
            )
        if not 0 < amount < total_amount:
            raise InvalidGuardError(
                current_state, event,
                reason=(
                    f"Partial amount must be between 1 and {total_amount - 1}, "
                    f"got {amount}"
                ),
            )

    if proposal_type is ProposalType.RELEASE_FULL:
        buyer_refund, seller_release = 0, total_amount
    elif proposal_type is ProposalType.REFUND_FULL:
        buyer_refund, seller_release = total_amount, 0
    elif proposal_type is ProposalType.RELEASE_PARTIAL:
        seller_release = amount
        buyer_refund = total_amount - amount
    else:
        buyer_refund = amount
        seller_release = total_amount - amount

    return Settlement(
        buyer_refund=buyer_refund,
        seller_release=seller_release,
        resolution_type=proposal_type.value,
        total_amount=total_amount,
    )


def settlement_from_apportionment(
    buyer_refund: int,
    seller_release: int,
    total_amount: int,
    *,
    current_state: str = "disputed",
    event: str = "dispute_resolved",
) -> Settlement:
    """Validate an arbiter's explicit split and return it as a Settlement."""
    if buyer_refund < 0 or seller_release < 0:
        raise InvalidGuardError(
            current_state, event, reason="Refund and release must be non-negative"
        )
    if buyer_refund + seller_release != total_amount:
        raise InvalidGuardError(
            current_state, event,
            reason=(
                f"Apportionment {buyer_refund} + {seller_release} does not equal "
                f"the escrowed amount {total_amount}"
            ),
        )

    if seller_release == total_amount:
        resolution_type = ProposalType.RELEASE_FULL.value
    elif buyer_refund == total_amount:
        resolution_type = ProposalType.REFUND_FULL.value
    else:
        resolution_type = "split"

    return Settlement(
        buyer_refund=buyer_refund,
        seller_release=seller_release,
        resolution_type=resolution_type,
        total_amount=total_amount,
    )
