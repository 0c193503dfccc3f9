"""Tests for the SQLAlchemy repositories."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from bharose_pe.domain.enums import DisputeStatus, TransactionStatus
from bharose_pe.infrastructure.database.orm_models import Dispute, DisputeProposal, Profile
from bharose_pe.infrastructure.database.repositories import (
    DisputeRepository,
    ProfileRepository,
    TransactionRepository,
    as_uuid,
)


class TestAsUuid:
    def test_conversions(self) -> None:
        value = uuid.uuid4()
        assert as_uuid(value) is value
        assert as_uuid(str(value)) == value
        assert as_uuid(None) is None


class TestProfileRepository:
    @pytest.mark.asyncio
    async def test_names_skip_blank_profiles(self, session) -> None:
        session.add_all([Profile(user_id="u-1", full_name="Asha"), Profile(user_id="u-2", full_name="")])
        await session.flush()
        repo = ProfileRepository(session)
        assert await repo.get_names(["u-1", "u-2", "u-3"]) == {"u-1": "Asha"}
        assert await repo.exists("u-2")
        assert not await repo.exists("u-3")

    @pytest.mark.asyncio
    async def test_upsert(self, session) -> None:
        repo = ProfileRepository(session)
        await repo.upsert("u-1", "Asha")
        updated = await repo.upsert("u-1", "Asha Verma")
        assert updated.full_name == "Asha Verma"


class TestTransactionRepository:
    @pytest.mark.asyncio
    async def test_compare_and_swap(self, session, make_transaction) -> None:
        tx = await make_transaction(TransactionStatus.CONTRACT_ACCEPTED)
        repo = TransactionRepository(session)

        assert await repo.compare_and_swap_status(tx.id, "contract_accepted", "payment_made")
        assert not await repo.compare_and_swap_status(tx.id, "contract_accepted", "disputed")
        assert await repo.get_status(tx.id) == "payment_made"
        assert tx.status == "payment_made"

    @pytest.mark.asyncio
    async def test_unknown_id(self, session, random_id) -> None:
        repo = TransactionRepository(session)
        assert await repo.get_by_id(random_id) is None
        assert await repo.get_status(random_id) is None
        assert not await repo.compare_and_swap_status(random_id, "created", "contract_accepted")


class TestDisputeRepository:
    @pytest.mark.asyncio
    async def test_one_active_dispute_per_transaction(self, session, make_transaction, make_dispute, buyer) -> None:
        tx = await make_transaction(TransactionStatus.DISPUTED)
        await make_dispute(tx)
        with pytest.raises(IntegrityError):
            await DisputeRepository(session).create(
                Dispute(
                    transaction_id=tx.id,
                    disputing_party_id=buyer.user_id,
                    dispute_reason="again",
                    status=DisputeStatus.ACTIVE.value,
                )
            )

    @pytest.mark.asyncio
    async def test_resolved_disputes_do_not_block(self, session, make_transaction, make_dispute, seller) -> None:
        tx = await make_transaction(TransactionStatus.DISPUTED)
        await make_dispute(tx, status=DisputeStatus.RESOLVED)
        repo = DisputeRepository(session)
        newer = await repo.create(
            Dispute(
                transaction_id=tx.id,
                disputing_party_id=seller.user_id,
                dispute_reason="second round",
                status=DisputeStatus.ACTIVE.value,
            )
        )
        assert len(await repo.list_for_transaction(tx.id)) == 2
        assert (await repo.get_open_for_transaction(tx.id)).id == newer.id

    @pytest.mark.asyncio
    async def test_add_evidence_persists(self, session, make_transaction, make_dispute) -> None:
        tx = await make_transaction(TransactionStatus.DISPUTED)
        dispute = await make_dispute(tx)
        repo = DisputeRepository(session)
        await repo.add_evidence(dispute, "https://files.test/a.png")
        await repo.add_evidence(dispute, "https://files.test/b.png")
        await session.commit()
        dispute_id = dispute.id
        session.expire(dispute)
        stored = await repo.get_by_id(dispute_id)
        assert stored.evidence_files == ["https://files.test/a.png", "https://files.test/b.png"]

    @pytest.mark.asyncio
    async def test_proposal_answered_once(self, session, make_transaction, make_dispute, buyer, seller) -> None:
        tx = await make_transaction(TransactionStatus.DISPUTED)
        dispute = await make_dispute(tx)
        repo = DisputeRepository(session)
        proposal = await repo.add_proposal(
            DisputeProposal(
                dispute_id=dispute.id,
                proposed_by=seller.user_id,
                proposal_type="refund_partial",
                amount=300,
                status="pending",
            )
        )

        assert await repo.respond_to_proposal(proposal.id, "pending", "rejected", buyer.user_id)
        assert not await repo.respond_to_proposal(proposal.id, "pending", "accepted", buyer.user_id)
        assert await repo.get_proposal_status(proposal.id) == "rejected"
        stored = await repo.get_proposal(proposal.id)
        assert stored.responded_by == buyer.user_id
        assert stored.responded_at is not None
