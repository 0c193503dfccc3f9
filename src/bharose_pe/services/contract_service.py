"""Contract Service: sending (and re-sending) contracts on a new transaction.

Answering a contract is a lifecycle event (contract_accepted /
contract_rejected) and goes through LifecycleService. Sending one does not
move the transaction, so it lives here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from bharose_pe.domain import notifications as notices
from bharose_pe.domain.enums import ContractStatus, TransactionStatus
from bharose_pe.domain.exceptions import (
    InvalidGuardError,
    StaleStateError,
    TransactionNotFoundError,
    ValidationError,
)
from bharose_pe.infrastructure.change_feed import ChangeFeed, serialize_row
from bharose_pe.infrastructure.database.orm_models import Contract
from bharose_pe.infrastructure.database.repositories import (
    ContractRepository,
    ProfileRepository,
    TransactionRepository,
)
from bharose_pe.logging_config import get_logger
from bharose_pe.services.lifecycle_service import transaction_view
from bharose_pe.services.notification_service import NotificationDispatcher

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from bharose_pe.domain.exceptions import SideEffectFailure
    from bharose_pe.domain.models import ActorContext

logger = get_logger(__name__)


@dataclass
class ContractSendResult:
    contract: Contract
    superseded: Contract | None = None
    failed_side_effects: list[SideEffectFailure] = field(default_factory=list)


class ContractService:
    """Sends contracts between the two parties of a transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._tx_repo = TransactionRepository(session)
        self._contract_repo = ContractRepository(session)
        self._profile_repo = ProfileRepository(session)
        self._dispatcher = NotificationDispatcher(session)

    async def send_contract(
        self,
        actor: ActorContext,
        transaction_id: uuid.UUID | str,
        content: str,
        terms: str | None = None,
    ) -> ContractSendResult:
        """Send a contract to the counterparty.

        A pending contract already on the transaction is superseded: it is
        deactivated and the recipient gets `contract_updated` instead of
        `contract_received`.
        """
        transaction = await self._tx_repo.get_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(str(transaction_id))
        if transaction.status != TransactionStatus.CREATED:
            raise InvalidGuardError(
                transaction.status,
                "contract_sent",
                reason=(
                    f"Contracts can only be sent while the transaction is created "
                    f"(it is {transaction.status})"
                ),
                expected_states=[TransactionStatus.CREATED.value],
            )
        if not content.strip():
            raise ValidationError("Contract content cannot be empty")

        names = await self._profile_repo.get_names([transaction.buyer_id, transaction.seller_id])
        view = transaction_view(transaction, names)
        # Raises UnauthorizedActorError for non-parties.
        recipient_id = notices.resolve_counterparty(view, actor.user_id)

        created = TransactionStatus.CREATED.value
        async with self._session.begin_nested():
            # Holds the row in `created` so a concurrent acceptance cannot interleave.
            if not await self._tx_repo.compare_and_swap_status(transaction.id, created, created):
                actual = await self._tx_repo.get_status(transaction.id)
                logger.warning(
                    "contract.stale_state", transaction_id=str(transaction.id), actual=actual
                )
                raise StaleStateError(str(transaction.id), created, actual)

            superseded = await self._contract_repo.get_active_for_transaction(transaction.id)
            if superseded is not None:
                await self._contract_repo.deactivate(superseded)

            contract = await self._contract_repo.create(
                Contract(
                    transaction_id=transaction.id,
                    content=content.strip(),
                    terms=terms,
                    created_by=actor.user_id,
                    recipient_id=recipient_id,
                    status=ContractStatus.PENDING.value,
                    is_active=True,
                )
            )
        ChangeFeed.stage(self._session, "contracts", serialize_row(contract), op="insert")

        record = notices.contract_sent(
            view,
            actor.user_id,
            str(contract.id),
            superseded_contract_id=str(superseded.id) if superseded else None,
        )
        _, failures = await self._dispatcher.dispatch([record])

        logger.info(
            "contract.sent",
            contract_id=str(contract.id),
            transaction_id=str(transaction.id),
            recipient_id=recipient_id,
            superseded=str(superseded.id) if superseded else None,
        )
        return ContractSendResult(
            contract=contract, superseded=superseded, failed_side_effects=failures
        )

    async def list_contracts(self, actor: ActorContext) -> list[Contract]:
        return await self._contract_repo.list_for_party(actor.user_id)
