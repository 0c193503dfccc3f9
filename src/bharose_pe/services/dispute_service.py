"""Dispute Service: the read side of disputes plus the append-only chat.

Raising, resolving and escalating disputes and every proposal action are
lifecycle events handled by LifecycleService. This service covers what does
not move the transaction: messages, evidence uploads and listings.
"""

from __future__ import annotations

import re
import uuid
from typing import TYPE_CHECKING

from bharose_pe.domain.enums import DisputeStatus, MessageType
from bharose_pe.domain.exceptions import (
    DisputeNotFoundError,
    InvalidGuardError,
    UnauthorizedActorError,
    ValidationError,
)
from bharose_pe.infrastructure.blob_store import LocalBlobStore
from bharose_pe.infrastructure.change_feed import ChangeFeed, serialize_row
from bharose_pe.infrastructure.database.orm_models import DisputeMessage
from bharose_pe.infrastructure.database.repositories import (
    DisputeRepository,
    TransactionRepository,
)
from bharose_pe.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bharose_pe.domain.models import ActorContext
    from bharose_pe.infrastructure.database.orm_models import (
        Dispute,
        DisputeProposal,
        Transaction,
    )

logger = get_logger(__name__)

EVIDENCE_BUCKETS = frozenset({"dispute-evidence", "dispute-chat"})

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", filename.rsplit("/", 1)[-1]).strip("._")
    return cleaned or "upload"


class DisputeService:
    """Messages, evidence and listings for disputes."""

    def __init__(self, session: AsyncSession, blob_store: LocalBlobStore | None = None) -> None:
        self._session = session
        self._dispute_repo = DisputeRepository(session)
        self._tx_repo = TransactionRepository(session)
        self._blob_store = blob_store

    async def list_disputes(
        self, actor: ActorContext, status: str | None = None
    ) -> list[Dispute]:
        return await self._dispute_repo.list_for_party(actor.user_id, status=status)

    async def get_dispute(
        self, actor: ActorContext, dispute_id: uuid.UUID | str
    ) -> tuple[Dispute, Transaction]:
        """Fetch a dispute visible to the actor (a party, or an arbiter)."""
        dispute = await self._dispute_repo.get_by_id(dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(str(dispute_id))
        transaction = await self._tx_repo.get_by_id(dispute.transaction_id)
        if not actor.is_arbiter and actor.user_id not in (
            transaction.buyer_id,
            transaction.seller_id,
        ):
            raise DisputeNotFoundError(str(dispute_id))
        return dispute, transaction

    async def list_messages(
        self, actor: ActorContext, dispute_id: uuid.UUID | str
    ) -> list[DisputeMessage]:
        dispute, _ = await self.get_dispute(actor, dispute_id)
        return await self._dispute_repo.list_messages([dispute.id])

    async def list_proposals(
        self, actor: ActorContext, dispute_id: uuid.UUID | str
    ) -> list[DisputeProposal]:
        dispute, _ = await self.get_dispute(actor, dispute_id)
        return await self._dispute_repo.list_proposals([dispute.id])

    async def post_message(
        self,
        actor: ActorContext,
        dispute_id: uuid.UUID | str,
        message: str,
        message_type: MessageType | str = MessageType.TEXT,
        file_url: str | None = None,
        file_name: str | None = None,
    ) -> DisputeMessage:
        """Append a chat message. Refused once the dispute is resolved."""
        dispute, transaction = await self._get_for_party(actor, dispute_id, "post messages")
        message_type = MessageType(message_type)
        if message_type is MessageType.TEXT and not message.strip():
            raise ValidationError("Message cannot be empty")
        if message_type is not MessageType.TEXT and not file_url:
            raise ValidationError(f"A {message_type.value} message needs a file_url")

        posted = await self._dispute_repo.add_message(
            DisputeMessage(
                dispute_id=dispute.id,
                sender_id=actor.user_id,
                message=message.strip() or (file_name or ""),
                message_type=message_type.value,
                file_url=file_url,
                file_name=file_name,
            )
        )
        ChangeFeed.stage(self._session, "dispute_messages", serialize_row(posted), op="insert")
        logger.info(
            "dispute.message_posted",
            dispute_id=str(dispute.id),
            transaction_id=str(transaction.id),
            sender_id=actor.user_id,
            message_type=message_type.value,
        )
        return posted

    async def upload_evidence(
        self,
        actor: ActorContext,
        dispute_id: uuid.UUID | str,
        filename: str,
        data: bytes,
        bucket: str = "dispute-evidence",
    ) -> str:
        """Store a file for the dispute and return its URL.

        Files in `dispute-evidence` are also appended to the dispute's
        evidence list; `dispute-chat` files are referenced from messages.
        """
        if bucket not in EVIDENCE_BUCKETS:
            raise ValidationError(f"Unknown evidence bucket '{bucket}'")
        if self._blob_store is None:
            raise RuntimeError("DisputeService was created without a blob store")
        dispute, _ = await self._get_for_party(actor, dispute_id, "upload evidence")

        path = f"{dispute.id}/{uuid.uuid4().hex}-{safe_filename(filename)}"
        url = await self._blob_store.upload(bucket, path, data)
        if bucket == "dispute-evidence":
            await self._dispute_repo.add_evidence(dispute, url)
        logger.info(
            "dispute.evidence_uploaded",
            dispute_id=str(dispute.id),
            bucket=bucket,
            size=len(data),
        )
        return url

    async def _get_for_party(
        self, actor: ActorContext, dispute_id: uuid.UUID | str, action: str
    ) -> tuple[Dispute, Transaction]:
        dispute, transaction = await self.get_dispute(actor, dispute_id)
        if actor.user_id not in (transaction.buyer_id, transaction.seller_id):
            raise UnauthorizedActorError(actor.user_id, f"{action} on dispute {dispute.id}")
        if dispute.status == DisputeStatus.RESOLVED:
            raise InvalidGuardError(
                dispute.status,
                action.replace(" ", "_"),
                reason=f"Dispute {dispute.id} is resolved",
                expected_states=[DisputeStatus.ACTIVE.value, DisputeStatus.ESCALATED.value],
            )
        return dispute, transaction
