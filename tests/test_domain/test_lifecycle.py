"""Tests for the pure lifecycle engine (apply_event)."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime

import pytest

from bharose_pe.domain.enums import (
    ContractStatus,
    DisputeStatus,
    LifecycleEvent,
    NotificationType,
    ProposalStatus,
    ProposalType,
)
from bharose_pe.domain.exceptions import InvalidGuardError, UnauthorizedActorError
from bharose_pe.domain.lifecycle import (
    CreateDispute,
    CreateEscalation,
    CreateProposal,
    EscalateDispute,
    RecordDelivery,
    RecordSettlement,
    ResolveDispute,
    RespondToProposal,
    UpdateContractStatus,
    apply_event,
    build_dispute_snapshot,
)
from bharose_pe.domain.models import (
    ContractView,
    DeliveryPayload,
    DisputeContext,
    DisputePayload,
    DisputeView,
    EscalationPayload,
    PaymentPayload,
    ProposalPayload,
    ProposalResponsePayload,
    ProposalView,
    ResolutionPayload,
)
from bharose_pe.domain.state_machine import TransactionStateMachine

TX_ID = "12345678-1234-5678-1234-567812345678"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def contract(seller, buyer) -> ContractView:
    return ContractView(
        id="c-1",
        transaction_id=TX_ID,
        created_by=buyer.user_id,
        recipient_id=seller.user_id,
        status=ContractStatus.PENDING,
    )


@pytest.fixture
def dispute(buyer) -> DisputeView:
    return DisputeView(
        id="d-1",
        transaction_id=TX_ID,
        disputing_party_id=buyer.user_id,
        status=DisputeStatus.ACTIVE,
        dispute_reason="not delivered",
    )


def _proposal(proposed_by: str, proposal_type=ProposalType.REFUND_PARTIAL, amount=400,
              status=ProposalStatus.PENDING) -> ProposalView:
    return ProposalView(
        id="p-1",
        dispute_id="d-1",
        proposed_by=proposed_by,
        proposal_type=proposal_type,
        status=status,
        amount=amount,
    )


class TestGuardOrder:
    @pytest.mark.parametrize("status", [s.value for s in TransactionStateMachine.states])
    @pytest.mark.parametrize("event", list(LifecycleEvent))
    def test_illegal_pair_fails_on_state_first(self, make_view, outsider, status, event) -> None:
        if TransactionStateMachine.can_fire(status, event.value):
            return
        # An outsider with no payload still gets the state error.
        with pytest.raises(InvalidGuardError) as exc_info:
            apply_event(make_view(status), event, outsider)
        assert exc_info.value.current_state == status

    def test_unknown_event(self, make_view, buyer) -> None:
        with pytest.raises(InvalidGuardError, match="Unknown event"):
            apply_event(make_view("payment_made"), "refund_now", buyer)

    def test_actor_checked_before_payload(self, make_view, seller) -> None:
        with pytest.raises(UnauthorizedActorError):
            apply_event(make_view("contract_accepted"), LifecycleEvent.PAYMENT_MADE, seller)

    def test_payload_checked_last(self, make_view, buyer) -> None:
        with pytest.raises(InvalidGuardError, match="requires a PaymentPayload"):
            apply_event(make_view("contract_accepted"), LifecycleEvent.PAYMENT_MADE, buyer)


class TestHappyPath:
    def test_contract_accepted(self, make_view, seller, buyer, contract) -> None:
        t = apply_event(
            make_view("created"), LifecycleEvent.CONTRACT_ACCEPTED, seller, contract=contract
        )
        assert t.new_status == "contract_accepted"
        assert t.writes == (UpdateContractStatus("c-1", ContractStatus.ACCEPTED, None),)
        (notice,) = t.notifications
        assert notice.type is NotificationType.CONTRACT_ACCEPTED
        assert notice.user_id == buyer.user_id

    def test_contract_rejected(self, make_view, seller, contract) -> None:
        t = apply_event(
            make_view("created"),
            LifecycleEvent.CONTRACT_REJECTED,
            seller,
            None,
            contract=contract,
        )
        assert t.new_status == "contract_rejected"
        assert t.writes[0].status is ContractStatus.REJECTED

    def test_only_recipient_answers_contract(self, make_view, buyer, contract) -> None:
        with pytest.raises(UnauthorizedActorError):
            apply_event(
                make_view("created"), LifecycleEvent.CONTRACT_ACCEPTED, buyer, contract=contract
            )

    def test_contract_must_be_pending(self, make_view, seller, contract) -> None:
        answered = replace(contract, status=ContractStatus.ACCEPTED)
        with pytest.raises(InvalidGuardError, match="not awaiting a response"):
            apply_event(
                make_view("created"), LifecycleEvent.CONTRACT_ACCEPTED, seller, contract=answered
            )

    def test_missing_contract(self, make_view, seller) -> None:
        with pytest.raises(InvalidGuardError, match="No contract"):
            apply_event(make_view("created"), LifecycleEvent.CONTRACT_ACCEPTED, seller)

    def test_payment_then_confirmation(self, make_view, buyer, seller) -> None:
        paid = apply_event(
            make_view("contract_accepted"),
            LifecycleEvent.PAYMENT_MADE,
            buyer,
            PaymentPayload(amount=1000),
        )
        assert paid.new_status == "payment_made"
        assert paid.writes == ()
        assert paid.notifications[0].user_id == seller.user_id
        assert paid.notifications[0].title == "Payment Received!"

        done = apply_event(make_view("payment_made"), LifecycleEvent.DELIVERY_CONFIRMED, buyer)
        assert done.new_status == "completed"
        assert done.settlement.seller_release == 1000
        assert done.settlement.buyer_refund == 0
        assert isinstance(done.writes[0], RecordSettlement)
        assert done.notifications[0].title == "Funds Released"

    def test_payment_amount_must_match(self, make_view, buyer) -> None:
        with pytest.raises(InvalidGuardError, match="does not match"):
            apply_event(
                make_view("contract_accepted"),
                LifecycleEvent.PAYMENT_MADE,
                buyer,
                PaymentPayload(amount=999),
            )

    def test_work_completed_records_delivery(self, make_view, seller) -> None:
        t = apply_event(
            make_view("payment_made"),
            LifecycleEvent.WORK_COMPLETED,
            seller,
            DeliveryPayload(proof_url="https://example.test/awb.pdf", notes="Shipped"),
        )
        assert t.new_status == "work_completed"
        assert t.notifications == ()
        (write,) = t.writes
        assert isinstance(write, RecordDelivery)
        assert write.proof_url == "https://example.test/awb.pdf"

    def test_only_buyer_confirms(self, make_view, seller) -> None:
        with pytest.raises(UnauthorizedActorError):
            apply_event(make_view("work_completed"), LifecycleEvent.DELIVERY_CONFIRMED, seller)

    def test_one_notification_per_step(self, make_view, buyer, seller, contract) -> None:
        steps = [
            (make_view("created"), LifecycleEvent.CONTRACT_ACCEPTED, seller, None),
            (make_view("contract_accepted"), LifecycleEvent.PAYMENT_MADE, buyer,
             PaymentPayload(amount=1000)),
            (make_view("payment_made"), LifecycleEvent.DELIVERY_CONFIRMED, buyer, None),
        ]
        recipients = []
        for view, event, actor, payload in steps:
            t = apply_event(view, event, actor, payload, contract=contract)
            recipients.extend(n.user_id for n in t.notifications)
        assert recipients == [buyer.user_id, seller.user_id, seller.user_id]


class TestDisputes:
    def test_dispute_raised(self, make_view, buyer, seller) -> None:
        t = apply_event(
            make_view("payment_made"),
            LifecycleEvent.DISPUTE_RAISED,
            buyer,
            DisputePayload(reason="  not delivered  ", evidence_files=("a.png",)),
        )
        assert t.new_status == "disputed"
        (write,) = t.writes
        assert isinstance(write, CreateDispute)
        assert write.dispute_reason == "not delivered"
        assert write.evidence_files == ("a.png",)
        assert t.notifications[0].user_id == seller.user_id

    def test_outsider_cannot_dispute(self, make_view, outsider) -> None:
        with pytest.raises(UnauthorizedActorError):
            apply_event(
                make_view("payment_made"),
                LifecycleEvent.DISPUTE_RAISED,
                outsider,
                DisputePayload(reason="x"),
            )

    def test_blank_reason(self, make_view, seller) -> None:
        with pytest.raises(InvalidGuardError, match="needs a reason"):
            apply_event(
                make_view("work_completed"),
                LifecycleEvent.DISPUTE_RAISED,
                seller,
                DisputePayload(reason="   "),
            )

    def test_only_one_active_dispute(self, make_view, seller, dispute) -> None:
        with pytest.raises(InvalidGuardError, match="already active"):
            apply_event(
                make_view("payment_made"),
                LifecycleEvent.DISPUTE_RAISED,
                seller,
                DisputePayload(reason="x"),
                dispute=dispute,
            )

    def test_arbiter_resolution_400_600(self, make_view, arbiter, buyer, seller, dispute) -> None:
        t = apply_event(
            make_view("disputed", amount=1000),
            LifecycleEvent.DISPUTE_RESOLVED,
            arbiter,
            ResolutionPayload(buyer_refund=400, seller_release=600, resolution_notes="split"),
            dispute=dispute,
        )
        assert t.new_status == "completed"
        assert t.settlement.to_dict() == {
            "buyer_refund": 400,
            "seller_release": 600,
            "resolution_type": "split",
            "total_amount": 1000,
        }
        assert t.writes == (
            ResolveDispute("d-1", "split"),
            RecordSettlement(TX_ID, t.settlement),
        )
        assert [n.user_id for n in t.notifications] == [buyer.user_id, seller.user_id]
        assert all(n.type is NotificationType.DISPUTE_RESOLVED for n in t.notifications)

    def test_parties_cannot_resolve(self, make_view, buyer, dispute) -> None:
        with pytest.raises(UnauthorizedActorError):
            apply_event(
                make_view("disputed"),
                LifecycleEvent.DISPUTE_RESOLVED,
                buyer,
                ResolutionPayload(0, 1000, "mine"),
                dispute=dispute,
            )

    def test_resolution_must_conserve(self, make_view, arbiter, dispute) -> None:
        with pytest.raises(InvalidGuardError, match="does not equal"):
            apply_event(
                make_view("disputed"),
                LifecycleEvent.DISPUTE_RESOLVED,
                arbiter,
                ResolutionPayload(400, 500, "oops"),
                dispute=dispute,
            )

    def test_resolution_needs_active_dispute(self, make_view, arbiter, dispute) -> None:
        resolved = replace(dispute, status=DisputeStatus.RESOLVED)
        with pytest.raises(InvalidGuardError, match="not active"):
            apply_event(
                make_view("disputed"),
                LifecycleEvent.DISPUTE_RESOLVED,
                arbiter,
                ResolutionPayload(0, 1000, "late"),
                dispute=resolved,
            )


class TestEscalation:
    def test_escalation_writes_snapshot(self, make_view, seller, dispute) -> None:
        context = DisputeContext(
            disputes=[{"id": "d-1", "status": "active"}],
            messages=[{"id": "m-1", "message": "hello"}],
            proposals=[],
        )
        t = apply_event(
            make_view("disputed"),
            LifecycleEvent.ESCALATION_REQUESTED,
            seller,
            EscalationPayload(reason="stuck", context=context),
            dispute=dispute,
            now=NOW,
        )
        assert t.new_status == "escalated"
        assert t.notifications == ()
        escalate, create = t.writes
        assert escalate == EscalateDispute("d-1")
        assert isinstance(create, CreateEscalation)
        assert create.dispute_data == {
            "disputes": [{"id": "d-1", "status": "active"}],
            "messages": [{"id": "m-1", "message": "hello"}],
            "proposals": [],
            "escalation_timestamp": "2026-03-01T12:00:00+00:00",
        }

    def test_snapshot_is_detached(self) -> None:
        context = DisputeContext(messages=[{"id": "m-1", "meta": {"seen": False}}])
        snapshot = build_dispute_snapshot(context, NOW)
        context.messages.append({"id": "m-2"})
        context.messages[0]["meta"]["seen"] = True
        assert snapshot["messages"] == [{"id": "m-1", "meta": {"seen": False}}]

    def test_snapshot_serializes_values(self) -> None:
        context = DisputeContext(disputes=[{"created_at": NOW}])
        snapshot = build_dispute_snapshot(context, NOW)
        assert snapshot["disputes"][0]["created_at"] == str(NOW)

    def test_outsider_cannot_escalate(self, make_view, outsider, dispute) -> None:
        with pytest.raises(UnauthorizedActorError):
            apply_event(
                make_view("disputed"),
                LifecycleEvent.ESCALATION_REQUESTED,
                outsider,
                EscalationPayload(reason="x"),
                dispute=dispute,
            )


class TestProposals:
    def test_proposal_created(self, make_view, seller, buyer, dispute) -> None:
        t = apply_event(
            make_view("disputed"),
            LifecycleEvent.PROPOSAL_CREATED,
            seller,
            ProposalPayload(ProposalType.REFUND_PARTIAL, amount=300),
            dispute=dispute,
        )
        assert t.new_status == "disputed"
        assert not t.changes_status
        (write,) = t.writes
        assert isinstance(write, CreateProposal)
        assert write.amount == 300
        assert t.notifications[0].user_id == buyer.user_id

    def test_full_proposal_drops_amount(self, make_view, seller, dispute) -> None:
        t = apply_event(
            make_view("disputed"),
            LifecycleEvent.PROPOSAL_CREATED,
            seller,
            ProposalPayload(ProposalType.REFUND_FULL, amount=300),
            dispute=dispute,
        )
        assert t.writes[0].amount is None

    def test_partial_amount_must_be_inside_escrow(self, make_view, seller, dispute) -> None:
        with pytest.raises(InvalidGuardError, match="between 1 and 999"):
            apply_event(
                make_view("disputed"),
                LifecycleEvent.PROPOSAL_CREATED,
                seller,
                ProposalPayload(ProposalType.RELEASE_PARTIAL, amount=1000),
                dispute=dispute,
            )

    def test_proposal_accepted(self, make_view, buyer, seller, dispute) -> None:
        t = apply_event(
            make_view("disputed"),
            LifecycleEvent.PROPOSAL_ACCEPTED,
            buyer,
            ProposalResponsePayload("p-1"),
            dispute=dispute,
            proposal=_proposal(seller.user_id),
        )
        assert t.new_status == "completed"
        assert (t.settlement.buyer_refund, t.settlement.seller_release) == (400, 600)
        assert t.writes[0] == RespondToProposal("p-1", ProposalStatus.ACCEPTED, buyer.user_id)
        assert t.writes[1] == ResolveDispute("d-1", "Proposal accepted: refund_partial ₹400")
        assert isinstance(t.writes[2], RecordSettlement)
        (notice,) = t.notifications
        assert notice.user_id == seller.user_id
        assert notice.type is NotificationType.PROPOSAL_ACCEPTED

    def test_full_proposal_notes(self, make_view, buyer, seller, dispute) -> None:
        t = apply_event(
            make_view("disputed"),
            LifecycleEvent.PROPOSAL_ACCEPTED,
            buyer,
            ProposalResponsePayload("p-1"),
            dispute=dispute,
            proposal=_proposal(seller.user_id, ProposalType.RELEASE_FULL, amount=None),
        )
        assert t.writes[1].resolution_notes == "Proposal accepted: release_full full amount"

    def test_proposal_rejected_keeps_dispute(self, make_view, buyer, seller, dispute) -> None:
        t = apply_event(
            make_view("disputed"),
            LifecycleEvent.PROPOSAL_REJECTED,
            buyer,
            ProposalResponsePayload("p-1"),
            dispute=dispute,
            proposal=_proposal(seller.user_id),
        )
        assert t.new_status == "disputed"
        assert t.writes == (RespondToProposal("p-1", ProposalStatus.REJECTED, buyer.user_id),)
        assert t.settlement is None

    def test_proposer_cannot_answer_own_proposal(self, make_view, seller, dispute) -> None:
        with pytest.raises(UnauthorizedActorError):
            apply_event(
                make_view("disputed"),
                LifecycleEvent.PROPOSAL_ACCEPTED,
                seller,
                ProposalResponsePayload("p-1"),
                dispute=dispute,
                proposal=_proposal(seller.user_id),
            )

    def test_answered_proposal(self, make_view, buyer, seller, dispute) -> None:
        with pytest.raises(InvalidGuardError, match="already rejected"):
            apply_event(
                make_view("disputed"),
                LifecycleEvent.PROPOSAL_ACCEPTED,
                buyer,
                ProposalResponsePayload("p-1"),
                dispute=dispute,
                proposal=_proposal(seller.user_id, status=ProposalStatus.REJECTED),
            )

    def test_proposal_from_other_dispute(self, make_view, buyer, seller, dispute) -> None:
        foreign = ProposalView(
            id="p-9",
            dispute_id="d-other",
            proposed_by=seller.user_id,
            proposal_type=ProposalType.RELEASE_FULL,
            status=ProposalStatus.PENDING,
        )
        with pytest.raises(InvalidGuardError, match="does not belong"):
            apply_event(
                make_view("disputed"),
                LifecycleEvent.PROPOSAL_REJECTED,
                buyer,
                ProposalResponsePayload("p-9"),
                dispute=dispute,
                proposal=foreign,
            )
